"""
Scoreboard derivations over published medals.

Pure functions: callers pass in the current records and the set of published
medal ids, and nothing is cached between calls.
"""

from collections import Counter
from typing import Collection, Dict, Iterable, List, Optional

from .models import (
    Event,
    EventCategory,
    EventResult,
    Medal,
    MedalSummary,
    MedalType,
    Team,
    TeamRef,
    TeamScore,
)

UNCATEGORIZED = "Uncategorized"


def published_only(
    medals: Iterable[Medal],
    published_ids: Collection[int],
) -> List[Medal]:
    """Keep medals with ledger membership, preserving store order."""
    return [medal for medal in medals if medal.id in published_ids]


def compute_team_scores(
    teams: Iterable[Team],
    medals: Iterable[Medal],
    published_ids: Collection[int],
) -> List[TeamScore]:
    """
    Build the ranked team standings.

    Every published medal adds its points to the team total; only podium
    medals add to the medal counts. Teams are ordered by total score, then
    gold, silver and bronze counts, all descending. Remaining ties keep store
    order and ranks are the 1-based positions, so tied teams never share one.

    @param teams: All teams in store order
    @param medals: All medals in store order
    @param published_ids: Ids of published medals
    @return: Ranked list of TeamScore entries
    """
    visible = published_only(medals, published_ids)

    scores = []
    for team in teams:
        team_medals = [m for m in visible if m.team_id == team.id]
        counts = Counter(m.medal_type for m in team_medals)

        scores.append(
            TeamScore(
                id=team.id,
                name=team.name,
                icon=team.icon,
                color=team.color,
                gold_count=counts[MedalType.GOLD],
                silver_count=counts[MedalType.SILVER],
                bronze_count=counts[MedalType.BRONZE],
                total_score=sum(m.points for m in team_medals),
            )
        )

    # sorted() is stable, so equal keys stay in store order
    scores = sorted(scores, key=TeamScore.sort_key, reverse=True)
    for rank, score in enumerate(scores, 1):
        score.rank = rank
    return scores


def _winner(
    event_medals: List[Medal],
    medal_type: MedalType,
    teams_by_id: Dict[int, Team],
) -> Optional[TeamRef]:
    medal = next((m for m in event_medals if m.medal_type == medal_type), None)
    if medal is None:
        return None

    team = teams_by_id.get(medal.team_id)
    return TeamRef(id=team.id, name=team.name) if team else None


def compute_event_results(
    events: Iterable[Event],
    categories: Iterable[EventCategory],
    teams: Iterable[Team],
    medals: Iterable[Medal],
    published_ids: Collection[int],
) -> List[EventResult]:
    """
    Summarize podium winners per event.

    @param events: All events in store order
    @param categories: All event categories
    @param teams: All teams
    @param medals: All medals in store order
    @param published_ids: Ids of published medals
    @return: One EventResult per event, in event order
    """
    categories_by_id = {c.id: c for c in categories}
    teams_by_id = {t.id: t for t in teams}
    visible = published_only(medals, published_ids)

    results = []
    for event in events:
        category = categories_by_id.get(event.category_id)
        event_medals = [m for m in visible if m.event_id == event.id]

        results.append(
            EventResult(
                id=event.id,
                name=event.name,
                category=category.name if category else UNCATEGORIZED,
                category_id=category.id if category else 0,
                event_date=event.event_date,
                status=event.status,
                gold_team=_winner(event_medals, MedalType.GOLD, teams_by_id),
                silver_team=_winner(event_medals, MedalType.SILVER, teams_by_id),
                bronze_team=_winner(event_medals, MedalType.BRONZE, teams_by_id),
            )
        )

    return results


def compute_medal_summary(
    medals: Iterable[Medal],
    published_ids: Collection[int],
) -> MedalSummary:
    """Count published podium medals."""
    counts = Counter(m.medal_type for m in published_only(medals, published_ids))
    return MedalSummary(
        gold_count=counts[MedalType.GOLD],
        silver_count=counts[MedalType.SILVER],
        bronze_count=counts[MedalType.BRONZE],
    )
