import dataclasses

import pytest

from quietstats.client import fingerprint
from quietstats.client.browser import SimulatedBrowser
from quietstats.client.fingerprint import FingerprintComponents, FingerprintGenerator
from quietstats.client.host import Host

BASE = FingerprintComponents(
    user_agent="Mozilla/5.0 Test",
    language="en-US",
    screen_width=1920,
    screen_height=1080,
    color_depth=24,
    timezone_offset=-60,
)


def test_same_components_same_token():
    gen = FingerprintGenerator()
    assert gen.generate(BASE) == gen.generate(BASE) == gen.generate(dataclasses.replace(BASE))


@pytest.mark.parametrize("field,value", [
    ("user_agent", "Mozilla/5.0 Other"),
    ("language", "de-DE"),
    ("screen_width", 1280),
    ("screen_height", 720),
    ("color_depth", 30),
    ("timezone_offset", 0),
])
def test_single_component_change_changes_token(field, value):
    gen = FingerprintGenerator(nonce=b"n" * 16)
    assert gen.generate(BASE) != gen.generate(dataclasses.replace(BASE, **{field: value}))


def test_token_is_short_hex():
    token = FingerprintGenerator().generate(BASE)
    assert len(token) == 16
    int(token, 16)


def test_nonce_scopes_token():
    assert FingerprintGenerator(b"a" * 16).generate(BASE) == FingerprintGenerator(b"a" * 16).generate(BASE)
    assert FingerprintGenerator(b"a" * 16).generate(BASE) != FingerprintGenerator(b"b" * 16).generate(BASE)


def test_module_generate_is_stable_within_process():
    assert fingerprint.generate(BASE) == fingerprint.generate(BASE)


def test_from_host_reads_capabilities():
    b = SimulatedBrowser(language="fr-FR", screen=(800, 600, 16), timezone_offset=120)
    c = FingerprintComponents.from_host(b.host)
    assert (c.language, c.screen_width, c.screen_height, c.color_depth, c.timezone_offset) == ("fr-FR", 800, 600, 16, 120)


def test_missing_capabilities_fall_back():
    c = FingerprintComponents.from_host(Host())
    assert c == FingerprintComponents()
    assert c.canonical() == "unknown|unknown|0|0|0|0"
    assert FingerprintComponents.from_host(None) == c


def test_raising_capability_falls_back():
    class BrokenScreen:
        @property
        def width(self):
            raise RuntimeError("blocked")

        height = "not a number"
        color_depth = None

    c = FingerprintComponents.from_host(Host(screen=BrokenScreen()))
    assert (c.screen_width, c.screen_height, c.color_depth) == (0, 0, 0)
