import smtplib
from email.message import EmailMessage

from flask import current_app


def _smtp_settings() -> dict:
    cfg = current_app.config
    return {
        "host": cfg.get("SMTP_HOST"),
        "port": cfg.get("SMTP_PORT", 587),
        "username": cfg.get("SMTP_USERNAME"),
        "password": cfg.get("SMTP_PASSWORD"),
        "sender": cfg.get("SMTP_FROM_EMAIL") or cfg.get("SMTP_USERNAME"),
        "use_tls": cfg.get("SMTP_USE_TLS", True),
        "timeout": cfg.get("SMTP_TIMEOUT_SECONDS", 10),
    }


def send_email(to_email: str, subject: str, body: str):
    """
    Sends a plain-text mail. Returns (sent, error); never raises, callers
    decide whether a failed send matters.
    """
    smtp = _smtp_settings()
    if not smtp["host"] or not smtp["sender"]:
        return False, "Email not configured"
    if not to_email:
        return False, "No recipient"

    msg = EmailMessage()
    msg["From"] = smtp["sender"]
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(smtp["host"], smtp["port"], timeout=smtp["timeout"]) as server:
            if smtp["use_tls"]:
                server.starttls()
            if smtp["username"] and smtp["password"]:
                server.login(smtp["username"], smtp["password"])
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)
    return True, None
