"""
MJML Email Templates
Job lifecycle emails, keyed by template key, using MJML for responsive rendering
"""

from typing import Callable, Dict, Optional, Tuple

from .config import BRAND_NAME, FRONTEND_URL

THEME = {
    "primary": "#14b8a6",
    "primary_dark": "#0d9488",
    "primary_light": "#ccfbf1",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 0 40px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['primary_dark']}" padding="0">
              {BRAND_NAME}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="24px 0 32px 0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because of a cleaning booked through {BRAND_NAME}.
              <a href="{FRONTEND_URL}/settings/notifications" style="color: {THEME['text_muted']};">Manage notifications</a>
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: Dict[str, str]) -> str:
    lines = "".join(
        f"<tr><td style=\"padding:6px 0;color:{THEME['text_muted']};\">{label}</td>"
        f"<td style=\"padding:6px 0;text-align:right;font-weight:600;\">{value}</td></tr>"
        for label, value in rows.items()
        if value
    )
    return f"""
    <mj-table font-size="15px" color="{THEME['text_secondary']}" padding="8px 0 24px 0">
      {lines}
    </mj-table>
    """


def job_offered_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx['client_name']} would like to book you for a cleaning.</mj-text>
    {_detail_rows({"When": ctx["when"], "Address": ctx["address"], "Pay": f"${ctx.get('pay', '')}"})}
    """
    return get_base_template("New job offer", "You have a new job offer", content, ctx["job_link"], "Respond to Offer")


def booking_confirmation_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>Your cleaning is confirmed. {ctx['cleaner_name']} will be your cleaner.</mj-text>
    {_detail_rows({"When": ctx["when"], "Address": ctx["address"]})}
    """
    return get_base_template("Your cleaning is booked", "Booking confirmed", content, ctx["job_link"], "View Booking")


def cleaner_on_way_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx['cleaner_name']} is heading to {ctx['address']}.</mj-text>
    {_detail_rows({"Estimated arrival": ctx.get("eta", "")})}
    """
    return get_base_template(
        "Your cleaner is on the way", f"ETA {ctx.get('eta', '')}", content, ctx["job_link"], "Track Job"
    )


def extra_time_requested_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx['cleaner_name']} needs a little more time to finish your cleaning.</mj-text>
    {_detail_rows({"Extra time": f"{ctx.get('minutes')} minutes", "Additional cost": f"${ctx.get('cost')}", "Reason": ctx.get("reason", "")})}
    <mj-text color="{THEME['warning']}" font-weight="600">Please approve or deny in the app.</mj-text>
    """
    return get_base_template(
        "Extra time requested", "Approval needed", content, ctx["job_link"], "Approve or Deny"
    )


def cleaning_completed_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx['cleaner_name']} has finished cleaning {ctx['address']}.</mj-text>
    {_detail_rows({"Time worked": ctx.get("duration", "")})}
    <mj-text>Please review the photos and approve the work.</mj-text>
    """
    return get_base_template("Cleaning complete", "Please review your cleaning", content, ctx["job_link"], "Review Job")


def job_approved_template(ctx: dict) -> str:
    tip = ctx.get("tip")
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx['client_name']} approved your work.</mj-text>
    {_detail_rows({"Rating": f"{ctx.get('rating')} / 5", "Tip": f"${tip:.2f}" if tip else ""})}
    """
    return get_base_template("Job approved", "Your work was approved", content, ctx["job_link"], "View Job")


def dispute_opened_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx.get('opened_by')} opened a dispute for the cleaning at {ctx['address']}.</mj-text>
    {_detail_rows({"Reason": ctx.get("reason", "")})}
    <mj-text>Our support team will review it and follow up.</mj-text>
    """
    return get_base_template("Dispute opened", "A dispute was opened", content, ctx["job_link"], "View Dispute")


def dispute_resolved_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>The dispute for the cleaning at {ctx['address']} has been resolved.</mj-text>
    {_detail_rows({"Outcome": ctx.get("outcome", ""), "Notes": ctx.get("notes", "")})}
    """
    return get_base_template("Dispute resolved", "Your dispute was resolved", content, ctx["job_link"], "View Job")


def job_cancelled_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>The cleaning scheduled for {ctx['when']} was cancelled by {ctx.get('cancelled_by')}.</mj-text>
    {_detail_rows({"Reason": ctx.get("reason", "")})}
    """
    return get_base_template("Job cancelled", "Your job was cancelled", content, ctx["job_link"], "View Details")


def reschedule_requested_template(ctx: dict) -> str:
    content = f"""
    <mj-text>Hi {ctx['recipient_name']},</mj-text>
    <mj-text>{ctx.get('requested_by')} asked to move the cleaning at {ctx['address']}.</mj-text>
    {_detail_rows({"Current time": ctx["when"], "Proposed time": ctx.get("new_when", "")})}
    """
    return get_base_template(
        "Reschedule requested", "A new time was proposed", content, ctx["job_link"], "Respond"
    )


# template key -> (subject builder, MJML builder)
EMAIL_TEMPLATES: Dict[str, Tuple[Callable[[dict], str], Callable[[dict], str]]] = {
    "email.cleaner.job_offered": (lambda c: f"New job offer from {c['client_name']}", job_offered_template),
    "email.client.booking_confirmation": (lambda c: f"Your cleaning is booked for {c['when']}", booking_confirmation_template),
    "email.client.cleaner_on_way": (lambda c: f"{c['cleaner_name']} is on the way", cleaner_on_way_template),
    "email.client.extra_time_requested": (lambda c: "Extra time requested - approval needed", extra_time_requested_template),
    "email.client.cleaning_completed": (lambda c: "Your cleaning is complete", cleaning_completed_template),
    "email.cleaner.job_approved": (lambda c: "Your job was approved", job_approved_template),
    "email.dispute.opened": (lambda c: "A dispute was opened on your job", dispute_opened_template),
    "email.dispute.resolved": (lambda c: "Your dispute was resolved", dispute_resolved_template),
    "email.job.cancelled": (lambda c: "Your cleaning was cancelled", job_cancelled_template),
    "email.job.reschedule_requested": (lambda c: "Reschedule requested", reschedule_requested_template),
}
