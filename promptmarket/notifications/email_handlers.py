from promptmarket.services.email_service import send_email
from promptmarket.utils.template import render_template
from promptmarket.config import settings


def send_user_email(template, subject, email, **ctx):
    html = render_template(template, store_name=settings.STORE_NAME, **ctx)
    return send_email(to=email, subject=subject, html=html)


def send_admin_email(template, subject, **ctx):
    html = render_template(template, store_name=settings.STORE_NAME, **ctx)
    return send_email(to=settings.ADMIN_EMAILS, subject=subject, html=html)
