"""
Email Service for verification links, invitations and notifications
"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app

logger = logging.getLogger(__name__)

EMAIL_STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
        .container { max-width: 600px; margin: 0 auto; padding: 20px; }
        .header { background: #4a90a4; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }
        .content { background: #f9f9f9; padding: 30px; border: 1px solid #ddd; }
        .button { display: inline-block; background: #27ae60; color: white; padding: 15px 40px; text-decoration: none; border-radius: 5px; margin: 20px 0; font-size: 16px; }
        .footer { text-align: center; padding: 20px; color: #666; font-size: 12px; }
        .warning { background: #fff3cd; padding: 15px; border-radius: 5px; margin-top: 20px; font-size: 13px; }
        .link-text { word-break: break-all; background: #eee; padding: 10px; border-radius: 5px; font-size: 12px; }
"""


def _render_html(title, heading, paragraphs, link=None, link_label=None, warning=None):
    body = ''.join(f'<p>{p}</p>' for p in paragraphs)
    button = ''
    if link:
        button = f"""
            <center>
                <a href="{link}" class="button">{link_label}</a>
            </center>
            <p class="link-text">Or copy this link: {link}</p>"""
    note = f'<div class="warning">{warning}</div>' if warning else ''
    return f"""
<!DOCTYPE html>
<html>
<head>
    <style>{EMAIL_STYLE}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{title}</h1>
        </div>
        <div class="content">
            <h2>{heading}</h2>
            {body}{button}
            {note}
        </div>
        <div class="footer">
            <p>ClinicDesk</p>
        </div>
    </div>
</body>
</html>
"""


def frontend_url(path):
    base = current_app.config.get('FRONTEND_BASE_URL', '').rstrip('/')
    return f"{base}/{path.lstrip('/')}"


def send_email(to_email, subject, body_text, body_html=None):
    """
    Generic email sending function

    Args:
        to_email: Recipient email
        subject: Email subject
        body_text: Plain text body
        body_html: HTML body (optional)

    Returns:
        bool: True if sent successfully. Delivery problems are logged and
        never raised, so a request is not failed by a mail outage.
    """
    mail_server = current_app.config.get('MAIL_SERVER')
    mail_port = current_app.config.get('MAIL_PORT')
    mail_use_tls = current_app.config.get('MAIL_USE_TLS')
    mail_username = current_app.config.get('MAIL_USERNAME')
    mail_password = current_app.config.get('MAIL_PASSWORD')
    mail_sender = current_app.config.get('MAIL_DEFAULT_SENDER')

    if not mail_username or not mail_password:
        logger.warning("Email not configured. Skipping %r to %s", subject, to_email)
        return False

    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = mail_sender
    msg['To'] = to_email

    msg.attach(MIMEText(body_text, 'plain'))
    if body_html:
        msg.attach(MIMEText(body_html, 'html'))

    try:
        with smtplib.SMTP(mail_server, mail_port, timeout=10) as server:
            if mail_use_tls:
                server.starttls()
            server.login(mail_username, mail_password)
            server.sendmail(mail_sender, to_email, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False

    logger.info(f"Email sent to {to_email}")
    return True


def send_verification_email(email, full_name, token, ttl_hours=24):
    """Send the email-verification link created at signup or on resend."""
    link = frontend_url(f"verify-email?token={token}")
    text = f"""
Hello {full_name},

Please confirm your email address by opening the link below:
{link}

This link will expire in {ttl_hours} hours.

If you did not create an account, please ignore this email.

Best regards,
ClinicDesk
    """
    html = _render_html(
        'Verify your email',
        f'Hello {full_name},',
        ['Please confirm your email address to finish setting up your account.'],
        link=link,
        link_label='Verify Email',
        warning=f'<strong>This link will expire in {ttl_hours} hours.</strong>',
    )
    return send_email(email, 'Verify your email - ClinicDesk', text, html)


def send_welcome_email(email, full_name, clinic_name, trial_days):
    text = f"""
Welcome to ClinicDesk, {full_name}!

Your clinic "{clinic_name}" is ready. Your free trial lasts {trial_days} days.

Best regards,
ClinicDesk
    """
    html = _render_html(
        'Welcome!',
        f'Welcome, {full_name}',
        [
            f'Your clinic <strong>{clinic_name}</strong> is ready.',
            f'Your free trial lasts {trial_days} days.',
        ],
        link=frontend_url('dashboard'),
        link_label='Open Dashboard',
    )
    return send_email(email, 'Welcome to ClinicDesk', text, html)


def send_invite_email(email, clinic_name, role, token, ttl_days=7):
    """
    Send a staff invitation.

    Args:
        email: Invitee address
        clinic_name: Clinic the invite is for
        role: Role name the invitee will get
        token: Plaintext invite token (only its hash is stored)
        ttl_days: Days until the invite expires
    """
    link = frontend_url(f"accept-invite?token={token}")
    text = f"""
You have been invited to join {clinic_name} on ClinicDesk as {role.title()}.

Accept the invitation here:
{link}

This invitation will expire in {ttl_days} days.

Best regards,
ClinicDesk
    """
    html = _render_html(
        "You're invited",
        f'Join {clinic_name}',
        [f'You have been invited to join <strong>{clinic_name}</strong> as <strong>{role.title()}</strong>.'],
        link=link,
        link_label='Accept Invitation',
        warning=f'<strong>This invitation will expire in {ttl_days} days.</strong>',
    )
    return send_email(email, f'Invitation to join {clinic_name} - ClinicDesk', text, html)
