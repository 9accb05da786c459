"""Renders a DecisionContext into the instruction text sent to the model.

Pure and deterministic: same context in, same text out. Rendering uses a
string-loaded Jinja2 environment so the template can later move to the
message_templates store without code changes.
"""

import logging
from typing import Any, Dict, List

from jinja2 import BaseLoader, Environment, StrictUndefined

from data_models.recommendation import ActionType, Channel, DecisionContext

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a pharmaceutical marketing expert with deep knowledge of health "
    "regulations and best practices for engaging healthcare professionals."
)

NOTE_MAX_CHARS = 120
SIGNAL_MAX_CHARS = 100

PROMPT_TEMPLATE = """\
You generate personalized Next Best Action recommendations for a healthcare professional (HCP).
Today is {{ today }}.

HCP PROFILE:
- Name: {{ hcp.display_name }}
- Specialty: {{ hcp.specialty or "unknown" }}
- Institution: {{ hcp.institution or "unknown" }}
- Region: {{ hcp.region or "unknown" }}
- Patient volume: {{ hcp.patient_volume }}
- Prescription decile: {{ hcp.prescription_decile }}/10
- Response level: {{ hcp.response_level }}/10
- Buyer persona: {{ hcp.buyer_persona }}
- Adoption ladder stage: {{ hcp.adoption_stage }}
- Clinical interests: {{ hcp.clinical_interests | join(", ") or "none recorded" }}
- Regulatory restrictions: {{ hcp.regulatory_restrictions | join(", ") or "none recorded" }}

CONTACT HISTORY (most recent first):
{% for c in contacts %}
- {{ c.date }}: {{ c.contact_type }} via {{ c.channel }} ({{ c.outcome }}){% if c.notes %} - {{ c.notes }}{% endif %}

{% else %}
No recent contacts
{% endfor %}

RECENT PRESCRIPTIONS:
{% for p in prescriptions %}
- {{ p.date }}: {{ p.product_id }} ({{ p.prescription_type }}) - value {{ p.value }}
{% else %}
No recent prescriptions
{% endfor %}

RELEVANT EXTERNAL SIGNALS:
{% for s in signals %}
- {{ s.source }}: {{ s.content }} ({{ s.sentiment }}, relevance {{ s.relevance }})
{% else %}
No relevant external signals
{% endfor %}

AVAILABLE PRODUCTS:
{% for p in products %}
- {{ p.product_id }} | {{ p.name }}: {{ p.active_ingredient }} - {{ p.indications | join(", ") }}
{% else %}
No products available
{% endfor %}

APPROVED CONTENT:
{% for c in content %}
- {{ c.content_type }}: {{ c.title }} (v{{ c.version }}){% if c.product_ids %} [products: {{ c.product_ids | join(", ") }}]{% endif %}

{% else %}
No approved content available
{% endfor %}

INSTRUCTIONS:
1. Analyze the HCP profile and history and identify engagement opportunities.
2. Propose between 3 and 5 specific, personalized actions.
3. "action_type" MUST be one of: {{ action_types | join(", ") }}.
4. "channel" MUST be one of: {{ channels | join(", ") }}.
5. "score" is the numeric probability of success from 0 to 100.
6. List every regulatory restriction that applies in "restrictions".
7. Use only approved content and reference products by their id.

COMPLIANCE RULES (mandatory):
- Do NOT claim benefits that are not approved.
- Do NOT make absolute efficacy claims (e.g. "cures", "100% effective", "no side effects").
- Do NOT compare directly with competitor products.
- Do NOT promise or guarantee outcomes.

Respond ONLY with JSON in this format:
{
  "recommendations": [
    {
      "action_type": "follow-up",
      "channel": "email",
      "ideal_moment": "YYYY-MM-DD HH:MM",
      "message": "Personalized message",
      "rationale": "Why this action is appropriate",
      "products": ["product-id"],
      "score": 85,
      "reasons": ["reason 1", "reason 2"],
      "restrictions": ["restriction 1"]
    }
  ]
}
"""

_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)
_template = _env.from_string(PROMPT_TEMPLATE)


def _truncate(text: str, limit: int) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def _render_vars(context: DecisionContext) -> Dict[str, Any]:
    contacts: List[Dict[str, Any]] = [
        {
            "date": c.contacted_at.date().isoformat(),
            "contact_type": c.contact_type,
            "channel": c.channel,
            "outcome": c.outcome,
            "notes": _truncate(c.notes, NOTE_MAX_CHARS),
        }
        for c in context.recent_contacts
    ]
    prescriptions = [
        {
            "date": p.prescribed_at.date().isoformat(),
            "product_id": p.product_id,
            "prescription_type": p.prescription_type,
            "value": f"{p.value:.2f}",
        }
        for p in context.recent_prescriptions
    ]
    signals = [
        {
            "source": s.source,
            "content": _truncate(s.content, SIGNAL_MAX_CHARS),
            "sentiment": s.sentiment,
            "relevance": s.relevance,
        }
        for s in context.signals
    ]
    return {
        "today": context.assembled_at.date().isoformat(),
        "hcp": context.hcp,
        "contacts": contacts,
        "prescriptions": prescriptions,
        "signals": signals,
        "products": context.products,
        "content": [c for c in context.approved_content if c.active],
        "action_types": [a.value for a in ActionType],
        "channels": [c.value for c in Channel],
    }


def build_prompt(context: DecisionContext) -> str:
    return _template.render(**_render_vars(context))
