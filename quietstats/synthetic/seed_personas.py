import argparse
import random
from typing import Sequence

from ..client.transport import DEFAULT_ENDPOINT, RequestTransport
from ..events import Event
from .personas import PERSONAS


class CountingTransport:
    def __init__(self, inner):
        self.inner = inner
        self.events = 0
        self.batches = 0

    def send(self, batch: Sequence[Event]) -> None:
        self.events += len(batch)
        self.batches += 1
        self.inner.send(batch)


def main(argv=None):
    ap = argparse.ArgumentParser(description="Send synthetic visitor sessions to an ingest endpoint.")
    ap.add_argument("--url", default=DEFAULT_ENDPOINT)
    ap.add_argument("--site-id", default="demo")
    ap.add_argument("--sessions", type=int, default=3, help="sessions per persona")
    ap.add_argument("--seed", type=int, default=None)
    args = ap.parse_args(argv)

    rng = random.Random(args.seed)
    request = RequestTransport(args.url)
    transport = CountingTransport(request)
    try:
        for name, persona in PERSONAS.items():
            for _ in range(args.sessions):
                persona(transport, site_id=args.site_id, rng=rng)
    finally:
        request.close()
    print(f"[seed] sent {transport.events} events in {transport.batches} batches across {len(PERSONAS)} personas → {args.url}")
    return transport.events


if __name__ == "__main__":
    main()
