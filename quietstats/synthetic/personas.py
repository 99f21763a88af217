"""
Scripted visitors. Each persona drives a SimulatedBrowser through the real
client SDK (Tracker, NavigationObserver, EventCollector) on virtual time and
hands batches to ``transport``.
"""
from __future__ import annotations
import random
from typing import Optional

from ..client.browser import SimulatedBrowser
from ..client.scheduler import ManualScheduler
from ..client.tracker import Tracker
from ..client.transport import Transport

BASE = "https://shop.example"

MOBILE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1"
FIREFOX_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0"


def _session(url, transport, site_id, **browser_kw):
    browser = SimulatedBrowser(url, beacon=False, **browser_kw)
    clock = ManualScheduler()
    tracker = Tracker(site_id, browser.host, transport=transport, scheduler=clock).start()
    return browser, clock, tracker


def _leave(browser, clock, tracker):
    clock.advance(1.0)
    browser.hide()
    tracker.shutdown()


def reader(transport: Transport, site_id="demo", rng: Optional[random.Random] = None, pages=6) -> Tracker:
    """Arrives from search, reads posts one after another, long dwell."""
    rng = rng or random.Random()
    browser, clock, tracker = _session(
        f"{BASE}/blog", transport, site_id, referrer="https://www.google.com/search?q=tea"
    )
    for i in range(pages):
        clock.advance(rng.uniform(30, 120))
        browser.history.push_state({"post": i}, "", f"/blog/post-{i + 1}")
    tracker.track("read_to_end", category="engagement", value=rng.choice([50, 75, 100]))
    _leave(browser, clock, tracker)
    return tracker


def skimmer(transport: Transport, site_id="demo", rng: Optional[random.Random] = None, pages=15) -> Tracker:
    """Mobile, many quick navigations, uses the back button."""
    rng = rng or random.Random()
    browser, clock, tracker = _session(
        f"{BASE}/", transport, site_id, referrer="https://t.co/abc", user_agent=MOBILE_UA, screen=(390, 844, 32)
    )
    for i in range(pages):
        clock.advance(rng.uniform(0.5, 4))
        if i % 4 == 3:
            browser.back()
        else:
            browser.history.push_state(None, "", f"/products/{rng.randint(1, 40)}")
    tracker.track("add_to_cart", category="commerce", value="sku-" + str(rng.randint(1, 40)))
    _leave(browser, clock, tracker)
    return tracker


def hash_router(transport: Transport, site_id="demo", rng: Optional[random.Random] = None, pages=8) -> Tracker:
    """Old-style app that routes on the fragment; filters use replace_state."""
    rng = rng or random.Random()
    browser, clock, tracker = _session(f"{BASE}/app", transport, site_id, user_agent=FIREFOX_UA)
    sections = ["inbox", "settings", "reports", "billing"]
    for i in range(pages):
        clock.advance(rng.uniform(2, 20))
        section = rng.choice(sections)
        browser.set_hash(section)
        browser.history.replace_state(None, "", f"/app?filter={i}#{section}")
    browser.back()
    _leave(browser, clock, tracker)
    return tracker


def bouncer(transport: Transport, site_id="demo", rng: Optional[random.Random] = None) -> Tracker:
    """One page from a referral link, gone in seconds."""
    rng = rng or random.Random()
    browser, clock, tracker = _session(f"{BASE}/landing?utm_source=news", transport, site_id,
                                       referrer="https://news.example.org/story")
    clock.advance(rng.uniform(1, 6))
    _leave(browser, clock, tracker)
    return tracker


PERSONAS = {
    "reader": reader,
    "skimmer": skimmer,
    "hash_router": hash_router,
    "bouncer": bouncer,
}
