import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from nba_engine.taxonomy import normalize_action_type, normalize_channel


@pytest.mark.parametrize("raw,expected", [
    ("follow-up", "follow-up"),
    ("Follow Up", "follow-up"),
    ("followup", "follow-up"),
    ("SEGUIMIENTO", "follow-up"),
    ("contacto_inicial", "initial-contact"),
    ("sample_delivery", "sample-delivery"),
    ("samples", "sample-delivery"),
    ("apoyo clinico", "clinical-support"),
])
def test_action_type_aliases(raw, expected):
    assert normalize_action_type(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("email", "email"),
    ("E-mail", "email"),
    ("WhatsApp", "whatsapp"),
    ("telefono", "phone"),
    ("in person event", "in-person-event"),
    ("evento_virtual", "virtual-event"),
    ("Webinar", "virtual-event"),
    ("X", "twitter"),
])
def test_channel_aliases(raw, expected):
    assert normalize_channel(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "carrier pigeon", 42])
def test_unknown_values(raw):
    assert normalize_channel(raw) is None
    assert normalize_action_type(raw) is None
