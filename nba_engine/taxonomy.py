import re
from typing import Dict, Optional

from data_models.recommendation import ActionType, Channel

# Alias map to support short names, underscores and the Spanish names the
# first catalog shipped with
ACTION_TYPE_ALIASES: Dict[str, str] = {
    # Initial contact
    "initial_contact": "initial-contact",
    "first_contact": "initial-contact",
    "contacto_inicial": "initial-contact",

    # Follow up
    "followup": "follow-up",
    "follow_up": "follow-up",
    "seguimiento": "follow-up",

    # Product presentation
    "product_presentation": "product-presentation",
    "presentacion_producto": "product-presentation",

    # Samples
    "sample_delivery": "sample-delivery",
    "samples": "sample-delivery",
    "entrega_muestra": "sample-delivery",

    # Events
    "event_invitation": "event-invitation",
    "invitacion_evento": "event-invitation",

    # Education & support
    "medical_education": "medical-education",
    "educacion_medica": "medical-education",
    "clinical_support": "clinical-support",
    "apoyo_clinico": "clinical-support",
}

CHANNEL_ALIASES: Dict[str, str] = {
    # Face to face
    "in_person": "personal",
    "visit": "personal",
    "face_to_face": "personal",

    # Phone variants
    "telephone": "phone",
    "call": "phone",
    "telefono": "phone",

    # Messaging
    "e_mail": "email",
    "mail": "email",
    "whats_app": "whatsapp",

    # Social
    "x": "twitter",

    # Events
    "in_person_event": "in-person-event",
    "evento_presencial": "in-person-event",
    "virtual_event": "virtual-event",
    "webinar": "virtual-event",
    "evento_virtual": "virtual-event",
}


def _normalize(value: str, aliases: Dict[str, str], canonical: set) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    raw = value.lower().strip()

    if raw in canonical:
        return raw

    # Try common variants (spaces, hyphens, underscores)
    underscored = re.sub(r"[\s\-]+", "_", raw)
    mapped = aliases.get(underscored)
    if mapped:
        return mapped

    hyphenated = underscored.replace("_", "-")
    if hyphenated in canonical:
        return hyphenated

    # Compact form ("followup", "whatsapp")
    compact = re.sub(r"[^a-z0-9]", "", raw)
    for candidate in canonical:
        if candidate.replace("-", "") == compact:
            return candidate
    return aliases.get(compact)


_ACTION_TYPES = {a.value for a in ActionType}
_CHANNELS = {c.value for c in Channel}


def normalize_action_type(value: str) -> Optional[str]:
    """Map model/API spellings onto the canonical action type, or None if unknown."""
    return _normalize(value, ACTION_TYPE_ALIASES, _ACTION_TYPES)


def normalize_channel(value: str) -> Optional[str]:
    """Map model/API spellings onto the canonical channel, or None if unknown."""
    return _normalize(value, CHANNEL_ALIASES, _CHANNELS)
