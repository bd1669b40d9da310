"""Notification bodies for monitoring alerts and weekly reports."""

from jinja2 import BaseLoader, Environment

_env = Environment(
    loader=BaseLoader(), autoescape=True, trim_blocks=True, lstrip_blocks=True
)

ALERT_EMAIL_TEMPLATE = """\
<h2>A/B Test Performance Alert</h2>
<p><strong>Campaign:</strong> {{ campaign_name }}</p>
{% for alert in alerts %}
<div style="margin-bottom:16px">
  <p><strong>Alert type:</strong> {{ alert.alert_type.value | replace('_', ' ') }}
     ({{ alert.severity.value | upper }})</p>
  <p>{{ alert.message }}</p>
  <p><strong>Recommended action:</strong> {{ alert.recommended_action }}</p>
</div>
{% endfor %}
<p>View your dashboard for detailed analytics.</p>
"""

WEEKLY_REPORT_TEMPLATE = """\
<h2>Weekly A/B Testing Report for {{ salon_name }}</h2>
<p>{{ summary }}</p>
{% if completed %}
<h3>Completed tests</h3>
<ul>
{% for campaign in completed %}
  <li>{{ campaign.name }} (completed {{ campaign.completed_at.strftime('%Y-%m-%d') }})</li>
{% endfor %}
</ul>
{% endif %}
{% if running %}
<h3>Running tests</h3>
<ul>
{% for campaign in running %}
  <li>{{ campaign.name }}</li>
{% endfor %}
</ul>
{% endif %}
{% if recommendations %}
<h3>New optimization recommendations</h3>
<ul>
{% for rec in recommendations %}
  <li>{{ rec.title }}: {{ rec.description }}</li>
{% endfor %}
</ul>
{% endif %}
"""

_alert_email = _env.from_string(ALERT_EMAIL_TEMPLATE)
_weekly_report = _env.from_string(WEEKLY_REPORT_TEMPLATE)


def alert_subject(alerts) -> str:
    if len(alerts) == 1:
        return f"A/B Test Alert: {alerts[0].alert_type.value.replace('_', ' ')}"
    return f"A/B Test Alert: {len(alerts)} updates"


def render_alert_email(campaign_name: str, alerts) -> str:
    return _alert_email.render(campaign_name=campaign_name, alerts=alerts)


def render_alert_sms(alerts) -> str:
    text = f"A/B Test Alert: {alerts[0].message[:100]}..."
    if len(alerts) > 1:
        text += f" (+{len(alerts) - 1} more)"
    return text + " View dashboard for details."


def render_weekly_report(
    salon_name: str,
    summary: str,
    completed,
    running,
    recommendations,
) -> str:
    return _weekly_report.render(
        salon_name=salon_name,
        summary=summary,
        completed=completed,
        running=running,
        recommendations=recommendations,
    )
