"""Rental desk assistant over a SQLite customer table.

Demonstrates:
- A ``CustomerDirectory`` backed by a real resource (SQLite)
- Wiring the booking tools into an orchestrator built from settings
- Streaming the assistant's answer with ``iter()`` and surfacing notifications

Usage:
    export FLEETASSIST_CHAT_ENDPOINT=https://<project>.supabase.co/functions/v1/ai-assistant-chat
    export FLEETASSIST_API_KEY=...
    python examples/booking_desk.py
"""

import asyncio
import difflib
import sqlite3

from fleetassist.booking import BookingCapability, CustomerDirectory, CustomerMatch
from fleetassist.config import Settings, configure_logging
from fleetassist.events import ContentDelta, RunCompleteEvent, RunItemEvent
from fleetassist.orchestrator import ConversationOrchestrator
from fleetassist.tools import ToolRegistry

CUSTOMERS = [
    ("cust-0001", "Ali Hassan", "050-111-2233", "ali.hassan@example.com"),
    ("cust-0002", "Alina Berg", "050-222-3344", "alina.berg@example.com"),
    ("cust-0003", "Dana Levi", "050-333-4455", "dana.levi@example.com"),
]


class SqliteCustomerDirectory(CustomerDirectory):
    """Scores every customer against the query; 100 is an exact name match."""

    def __init__(self, db_path: str = ":memory:"):
        self._conn = sqlite3.connect(db_path)
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS customers (id TEXT PRIMARY KEY, full_name TEXT, phone TEXT, email TEXT)"
        )
        self._conn.executemany("INSERT OR IGNORE INTO customers VALUES (?, ?, ?, ?)", CUSTOMERS)
        self._conn.commit()

    async def search_by_name(self, name: str) -> list[CustomerMatch]:
        rows = self._conn.execute("SELECT id, full_name, phone, email FROM customers").fetchall()
        matches = []
        for id, full_name, phone, email in rows:
            if name.lower() in full_name.lower():
                score = 100 if name.lower() == full_name.lower() else 80
            else:
                score = round(difflib.SequenceMatcher(None, name.lower(), full_name.lower()).ratio() * 100)
            if score >= 30:
                matches.append(CustomerMatch(id=id, full_name=full_name, phone=phone, email=email, match_score=score))
        return sorted(matches, key=lambda m: m.match_score, reverse=True)


def show_booking(booking: dict) -> None:
    print(f"\n[Booking form] {booking}")


async def main():
    configure_logging()
    registry = ToolRegistry()
    registry.add_capability(BookingCapability(SqliteCustomerDirectory(), on_booking_update=show_booking))
    orchestrator = ConversationOrchestrator.from_settings(Settings.from_env(), registry=registry)

    print("Rental desk assistant (type /clear to start over)\n")
    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if user_input.strip() == "/clear":
            await orchestrator.clear()
            continue

        print("Assistant: ", end="", flush=True)
        async for event in orchestrator.iter(user_input, current_route="/reservations/new"):
            if isinstance(event, ContentDelta):
                print(event.content, end="", flush=True)
            elif isinstance(event, RunItemEvent) and event.name == "notification":
                print(f"[{event.data['kind']}] {event.data['message']}", end="")
            elif isinstance(event, RunCompleteEvent) and event.result.status == "recursion_limit":
                await orchestrator.clear()
        print("\n")


if __name__ == "__main__":
    asyncio.run(main())
