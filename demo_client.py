#!/usr/bin/env python3
"""
Demo client to generate festival data on a running medal board server.
Creates teams and events, records random results, and optionally publishes.
"""

import argparse
import asyncio
import random
from typing import Any, Dict, List

import aiohttp

TEAM_NAMES = [
    ("Red Foxes", "#d62828"),
    ("Blue Herons", "#1d3557"),
    ("Green Owls", "#2a9d8f"),
    ("Golden Bees", "#e9c46a"),
    ("Violet Moths", "#6a4c93"),
    ("Orange Lynx", "#f4a261"),
]

EVENTS = [
    ("Chess", "Literary"),
    ("Debate", "Literary"),
    ("Poetry Recital", "Literary"),
    ("Folk Dance", "Performing Arts"),
    ("Solo Singing", "Performing Arts"),
    ("Drama", "Performing Arts"),
    ("Painting", "Visual Arts"),
    ("Photography", "Visual Arts"),
    ("Rangoli", "Cultural"),
    ("Quiz", "Cultural"),
]

PODIUM = ["GOLD", "SILVER", "BRONZE"]


async def _request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    **kwargs: Any,
) -> Any:
    async with session.request(method, url, **kwargs) as response:
        body = await response.json()
        if response.status >= 400:
            print(f"{method} {url} -> {response.status}: {body}")
        return body


async def generate_demo_data(
    base_url: str,
    username: str,
    password: str,
    publish: bool = False,
) -> int:
    """
    Populate the server with teams, events and results.

    @param base_url: Server root URL, e.g. http://localhost:8081
    @param username: Admin username
    @param password: Admin password
    @param publish: Publish the recorded medals at the end
    @return: Number of medals recorded
    """
    async with aiohttp.ClientSession(base_url) as session:
        login = await _request(
            session, "POST", "/api/auth/login",
            json={"username": username, "password": password},
        )
        if not login.get("success"):
            print("Login failed, check the admin credentials")
            return 0

        categories = {c["name"]: c["id"] for c in await _request(session, "GET", "/api/categories")}

        team_ids: List[int] = []
        existing = {t["name"]: t["id"] for t in await _request(session, "GET", "/api/teams")}
        for name, color in TEAM_NAMES:
            if name in existing:
                team_ids.append(existing[name])
                continue
            team = await _request(session, "POST", "/api/teams", json={"name": name, "color": color})
            team_ids.append(team["id"])

        print(f"Using {len(team_ids)} teams")

        total_medals = 0
        for event_name, category in EVENTS:
            payload: Dict[str, Any] = {"name": event_name, "status": "ONGOING"}
            if category in categories:
                payload["categoryId"] = categories[category]
            event = await _request(session, "POST", "/api/events", json=payload)

            entrants = random.sample(team_ids, random.randint(3, len(team_ids)))
            placements = []
            for index, team_id in enumerate(entrants):
                medal_type = PODIUM[index] if index < len(PODIUM) else "NON_WINNER"
                placements.append({"teamId": team_id, "medalType": medal_type})

            medals = await _request(
                session, "POST", f"/api/events/{event['id']}/results",
                json={"placements": placements},
            )
            total_medals += len(medals)
            print(f"Recorded {len(medals)} results for {event_name}")

        pending = await _request(session, "GET", "/api/unpublished-changes")
        print(f"{len(pending)} medal changes waiting for publication")

        if publish:
            await _request(session, "POST", "/api/publish-scores")
            print("Scores published")

        return total_medals


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate demo data for the medal board")
    parser.add_argument("--url", default="http://localhost:8081", help="Server root URL")
    parser.add_argument("--username", default="admin", help="Admin username")
    parser.add_argument("--password", default="change-me", help="Admin password")
    parser.add_argument("--publish", action="store_true", help="Publish after generating")
    args = parser.parse_args()

    total = asyncio.run(generate_demo_data(args.url, args.username, args.password, args.publish))
    print(f"\nDemo data generation complete: {total} medals")


if __name__ == "__main__":
    main()
