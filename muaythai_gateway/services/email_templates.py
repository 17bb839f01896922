"""HTML email templates (Thai copy) rendered with Jinja2"""

from datetime import date, datetime
from typing import Optional, Tuple

from jinja2 import DictLoader, Environment, select_autoescape

from muaythai_gateway.domain.models import PaymentFailure

BRAND = "MUAYTHAI Platform"

_TEMPLATES = {
    "base.html": """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <style>
      body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
      .container { max-width: 600px; margin: 0 auto; padding: 20px; }
      .header { background-color: #dc3545; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }
      .content { background-color: #f9f9f9; padding: 20px; border: 1px solid #ddd; }
      .info { background-color: #e7f3ff; padding: 15px; border-radius: 5px; margin: 15px 0; }
      .footer { text-align: center; padding: 20px; color: #666; font-size: 12px; }
    </style>
  </head>
  <body>
    <div class="container">
      <div class="header"><h1>{% block heading %}{% endblock %}</h1></div>
      <div class="content">{% block content %}{% endblock %}</div>
      <div class="footer"><p>อีเมลนี้ถูกส่งอัตโนมัติจากระบบ {{ brand }}</p></div>
    </div>
  </body>
</html>""",
    "booking_confirmation.html": """{% extends "base.html" %}
{% block heading %}ยืนยันการจองสำเร็จ{% endblock %}
{% block content %}
<p>สวัสดีคุณ {{ customer_name }},</p>
<p>การจองของคุณได้รับการยืนยันแล้ว</p>
<div class="info">
  <div><strong>หมายเลขการจอง:</strong> {{ booking_number }}</div>
  <div><strong>ค่ายมวย:</strong> {{ gym_name }}</div>
  <div><strong>แพ็คเกจ:</strong> {{ package_name }}</div>
  <div><strong>วันที่เริ่ม:</strong> {{ start_date }}</div>
  <div><strong>ยอดชำระ:</strong> ฿{{ "{:,.2f}".format(price_paid) }}</div>
</div>
{% if booking_url %}<p><a href="{{ booking_url }}">ดูรายละเอียดการจอง</a></p>{% endif %}
{% endblock %}""",
    "booking_reminder.html": """{% extends "base.html" %}
{% block heading %}📅 การจองของคุณจะเริ่มในอีก 1 วัน{% endblock %}
{% block content %}
<p>สวัสดีคุณ {{ customer_name }},</p>
<div class="info">
  <div><strong>หมายเลขการจอง:</strong> {{ booking_number }}</div>
  <div><strong>ค่ายมวย:</strong> {{ gym_name }}</div>
  <div><strong>แพ็คเกจ:</strong> {{ package_name }}</div>
  <div><strong>วันที่เริ่ม:</strong> {{ start_date }}</div>
  {% if gym_address %}<div><strong>ที่อยู่:</strong> {{ gym_address }}</div>{% endif %}
  {% if gym_phone %}<div><strong>โทร:</strong> {{ gym_phone }}</div>{% endif %}
</div>
{% if booking_url %}<p><a href="{{ booking_url }}">ดูการจองของคุณ</a></p>{% endif %}
{% endblock %}""",
    "payment_receipt.html": """{% extends "base.html" %}
{% block heading %}ใบเสร็จการชำระเงิน{% endblock %}
{% block content %}
<p>สวัสดีคุณ {{ customer_name }},</p>
<p>เราได้รับการชำระเงินของคุณเรียบร้อยแล้ว</p>
<div class="info">
  <div><strong>เลขที่รายการ:</strong> {{ transaction_number }}</div>
  <div><strong>จำนวนเงิน:</strong> {{ "{:,.2f}".format(amount) }} {{ currency|upper }}</div>
  <div><strong>วันที่ชำระ:</strong> {{ payment_date }}</div>
</div>
{% endblock %}""",
    "payment_failed.html": """{% extends "base.html" %}
{% block heading %}การชำระเงินไม่สำเร็จ{% endblock %}
{% block content %}
<p>สวัสดีคุณ {{ customer_name }},</p>
<p><strong>{{ failure.title }}</strong>: {{ failure.message }}</p>
{% if failure.suggestion %}<p>{{ failure.suggestion }}</p>{% endif %}
<div class="info">
  <div><strong>เลขที่รายการ:</strong> {{ transaction_number }}</div>
  <div><strong>จำนวนเงิน:</strong> {{ "{:,.2f}".format(amount) }} {{ currency|upper }}</div>
</div>
{% if failure.retryable and retry_url %}<p><a href="{{ retry_url }}">ลองชำระเงินอีกครั้ง</a></p>{% endif %}
{% endblock %}""",
    "admin_alert.html": """{% extends "base.html" %}
{% block heading %}[{{ priority|upper }}] {{ title }}{% endblock %}
{% block content %}
<p>{{ message }}</p>
{% if details %}<div class="info">{% for key, value in details.items() %}<div><strong>{{ key }}:</strong> {{ value }}</div>{% endfor %}</div>{% endif %}
{% endblock %}""",
    "scheduled_report.html": """{% extends "base.html" %}
{% block heading %}📊 รายงานที่กำหนดเวลา{% endblock %}
{% block content %}
<p>สวัสดีครับ/ค่ะ,</p>
<p>รายงาน <strong>{{ report_name }}</strong> ถูกสร้างเสร็จเรียบร้อยแล้ว</p>
<div class="info">
  <div><strong>ชื่อรายงาน:</strong> {{ report_name }}</div>
  <div><strong>จำนวนรายการ:</strong> {{ "{:,}".format(row_count) }} รายการ</div>
  <div><strong>วันที่สร้าง:</strong> {{ generated_at }}</div>
  <div><strong>รูปแบบไฟล์:</strong> {{ file_format }}</div>
</div>
<p>รายงานถูกแนบมาในอีเมลนี้ กรุณาตรวจสอบไฟล์แนบ</p>
{% endblock %}""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True, default_for_string=True),
)


def _render(template: str, **context) -> str:
    return _env.get_template(template).render(brand=BRAND, **context)


def _format_date(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"


def booking_confirmation(
    customer_name: str,
    booking_number: str,
    gym_name: str,
    package_name: str,
    start_date: Optional[date],
    price_paid: float,
    booking_url: Optional[str] = None,
) -> Tuple[str, str]:
    subject = f"ยืนยันการจองสำเร็จ - {booking_number} | {BRAND}"
    html = _render(
        "booking_confirmation.html",
        customer_name=customer_name,
        booking_number=booking_number,
        gym_name=gym_name,
        package_name=package_name,
        start_date=_format_date(start_date),
        price_paid=price_paid or 0,
        booking_url=booking_url,
    )
    return subject, html


def booking_reminder(
    customer_name: str,
    booking_number: str,
    gym_name: str,
    package_name: str,
    start_date: Optional[date],
    gym_address: Optional[str] = None,
    gym_phone: Optional[str] = None,
    booking_url: Optional[str] = None,
) -> Tuple[str, str]:
    subject = f"📅 เตือนความจำ: การจองของคุณจะเริ่มในอีก 1 วัน | {BRAND}"
    html = _render(
        "booking_reminder.html",
        customer_name=customer_name,
        booking_number=booking_number,
        gym_name=gym_name,
        package_name=package_name,
        start_date=_format_date(start_date),
        gym_address=gym_address,
        gym_phone=gym_phone,
        booking_url=booking_url,
    )
    return subject, html


def payment_receipt(
    customer_name: str,
    transaction_number: str,
    amount: float,
    currency: str,
    payment_date: datetime,
) -> Tuple[str, str]:
    subject = f"ใบเสร็จการชำระเงิน - {transaction_number} | {BRAND}"
    html = _render(
        "payment_receipt.html",
        customer_name=customer_name,
        transaction_number=transaction_number,
        amount=amount,
        currency=currency,
        payment_date=payment_date.strftime("%d/%m/%Y %H:%M"),
    )
    return subject, html


def payment_failed(
    customer_name: str,
    transaction_number: str,
    amount: float,
    currency: str,
    failure: PaymentFailure,
    retry_url: Optional[str] = None,
) -> Tuple[str, str]:
    subject = f"การชำระเงินไม่สำเร็จ - {transaction_number} | {BRAND}"
    html = _render(
        "payment_failed.html",
        customer_name=customer_name,
        transaction_number=transaction_number,
        amount=amount,
        currency=currency,
        failure=failure,
        retry_url=retry_url,
    )
    return subject, html


def admin_alert(title: str, message: str, priority: str = "high", details: Optional[dict] = None) -> Tuple[str, str]:
    subject = f"[{priority.upper()}] {title} | {BRAND}"
    html = _render("admin_alert.html", title=title, message=message, priority=priority, details=details or {})
    return subject, html


def scheduled_report(report_name: str, row_count: int, file_format: str, generated_at: datetime) -> Tuple[str, str]:
    subject = f"รายงานที่กำหนดเวลา: {report_name}"
    html = _render(
        "scheduled_report.html",
        report_name=report_name,
        row_count=row_count,
        file_format=file_format.upper(),
        generated_at=generated_at.strftime("%d/%m/%Y %H:%M"),
    )
    return subject, html
