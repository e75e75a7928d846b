"""Unit tests for mission catalog, generation and progress (engagement_engine/gamification/missions.py)"""
import asyncio
import random
import pytest
from datetime import date, datetime, timedelta, timezone

from engagement_engine.exceptions import (
    ConfigurationError,
    MissionTemplateNotFoundError,
    ValidationError,
)
from engagement_engine.gamification.missions import (
    DAILY_MISSIONS,
    DEFAULT_CATALOG,
    WEEKLY_MISSIONS,
    MissionCatalog,
    MissionGenerator,
    MissionProgressTracker,
    MissionTemplate,
)
from engagement_engine.models.gamification import MissionCategory, PeriodType
from engagement_engine.utils.calendar import Calendar


def _template(key="t", target=1, xp_reward=10, period_type=PeriodType.DAILY):
    return MissionTemplate(
        key=key,
        title=key.title(),
        description=f"Do {key}",
        category=MissionCategory.WATCH,
        target=target,
        xp_reward=xp_reward,
        period_type=period_type,
    )


# ============================================================================
# Catalog Tests
# ============================================================================

def test_default_catalog_contents():
    assert len(DEFAULT_CATALOG) == len(DAILY_MISSIONS) + len(WEEKLY_MISSIONS)
    assert len(DEFAULT_CATALOG.for_period(PeriodType.DAILY)) == 6
    assert len(DEFAULT_CATALOG.for_period(PeriodType.WEEKLY)) == 5
    assert DEFAULT_CATALOG.for_period(PeriodType.SPECIAL) == []


def test_catalog_lookup():
    template = DEFAULT_CATALOG.require("watch_10")

    assert template.target == 10
    assert template.xp_reward == 100
    assert template.bonus_reward == "Exclusive Badge"
    assert "watch_10" in DEFAULT_CATALOG
    assert DEFAULT_CATALOG.get("nope") is None


def test_catalog_require_unknown_key():
    with pytest.raises(MissionTemplateNotFoundError):
        DEFAULT_CATALOG.require("nope")


def test_catalog_rejects_duplicate_keys():
    with pytest.raises(ConfigurationError):
        MissionCatalog([_template("a"), _template("a")])


@pytest.mark.parametrize("target,xp_reward", [(0, 10), (1, 0), (-1, 10)])
def test_catalog_rejects_non_positive_values(target, xp_reward):
    with pytest.raises(ConfigurationError):
        MissionCatalog([_template("a", target=target, xp_reward=xp_reward)])


# ============================================================================
# Generation Tests
# ============================================================================

@pytest.mark.asyncio
async def test_generates_three_daily_missions(store, calendar, test_user_id):
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(42))

    created = await generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)

    assert created is True
    missions = await store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())
    assert len(missions) == 3
    assert len({m.mission_key for m in missions}) == 3
    for mission in missions:
        template = DEFAULT_CATALOG.require(mission.mission_key)
        assert template.period_type == PeriodType.DAILY
        assert mission.target == template.target
        assert mission.xp_reward == template.xp_reward
        assert mission.current == 0
        assert mission.is_completed is False
        assert mission.is_claimed is False
        assert mission.expires_at == calendar.end_of_day()


@pytest.mark.asyncio
async def test_selection_follows_random_source(store, calendar, test_user_id):
    """Seeded sources produce the same subset as sampling the pool directly"""
    pool = DEFAULT_CATALOG.for_period(PeriodType.WEEKLY)
    expected = {t.key for t in random.Random(42).sample(pool, 3)}
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(42))

    await generator.ensure_missions_for_period(test_user_id, PeriodType.WEEKLY)

    missions = await store.list_active_missions(test_user_id, PeriodType.WEEKLY, calendar.now())
    assert {m.mission_key for m in missions} == expected


@pytest.mark.asyncio
async def test_weekly_missions_expire_sunday_night(store, calendar, test_user_id):
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(1))

    await generator.ensure_missions_for_period(test_user_id, PeriodType.WEEKLY)

    missions = await store.list_active_missions(test_user_id, PeriodType.WEEKLY, calendar.now())
    assert len(missions) == 3
    for mission in missions:
        assert mission.expires_at.date() == date(2024, 1, 21)
        assert mission.expires_at == calendar.end_of_week()


@pytest.mark.asyncio
async def test_generation_is_idempotent(store, calendar, test_user_id):
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(3))

    first = await generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)
    ids = {m.id for m in await store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())}
    second = await generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)

    assert first is True
    assert second is False
    after = await store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())
    assert {m.id for m in after} == ids


@pytest.mark.asyncio
async def test_new_day_gets_new_daily_set(store, calendar, clock, test_user_id):
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(5))

    await generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)
    old_ids = {m.id for m in await store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())}

    clock.advance(days=1)
    created = await generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)

    assert created is True
    current = await store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())
    assert len(current) == 3
    assert not old_ids & {m.id for m in current}


@pytest.mark.asyncio
async def test_same_week_keeps_weekly_set(store, calendar, clock, test_user_id):
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(5))

    await generator.ensure_missions_for_period(test_user_id, PeriodType.WEEKLY)
    clock.advance(days=3)  # Saturday

    assert await generator.ensure_missions_for_period(test_user_id, PeriodType.WEEKLY) is False


@pytest.mark.asyncio
async def test_special_missions_are_not_generated(store, calendar, test_user_id):
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar)

    with pytest.raises(ValidationError):
        await generator.ensure_missions_for_period(test_user_id, PeriodType.SPECIAL)


@pytest.mark.asyncio
async def test_small_pool_issues_every_template(store, calendar, test_user_id):
    catalog = MissionCatalog([_template("only_one")])
    generator = MissionGenerator(store, catalog, calendar)

    await generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)

    missions = await store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())
    assert [m.mission_key for m in missions] == ["only_one"]


@pytest.mark.asyncio
async def test_empty_pool_generates_nothing(store, calendar, test_user_id):
    catalog = MissionCatalog([_template("daily_only")])
    generator = MissionGenerator(store, catalog, calendar)

    assert await generator.ensure_missions_for_period(test_user_id, PeriodType.WEEKLY) is False


class _TickingClock:
    """Moves forward one microsecond on every read"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(microseconds=1)
        return value


@pytest.mark.asyncio
@pytest.mark.parametrize("period_type", [PeriodType.DAILY, PeriodType.WEEKLY])
async def test_generation_at_midnight_leaves_next_window_free(store, period_type, test_user_id):
    """A set issued in the last microseconds of Sunday belongs to Sunday's window"""
    ticking = _TickingClock(datetime(2024, 1, 21, 23, 59, 59, 999998, tzinfo=timezone.utc))
    calendar = Calendar("UTC", clock=ticking)
    generator = MissionGenerator(store, DEFAULT_CATALOG, calendar, rng=random.Random(11))

    assert await generator.ensure_missions_for_period(test_user_id, period_type) is True

    ticking.current = datetime(2024, 1, 22, 12, 0, tzinfo=timezone.utc)
    assert await generator.ensure_missions_for_period(test_user_id, period_type) is True

    missions = await store.list_active_missions(test_user_id, period_type, calendar.now())
    assert len(missions) == 3
    for mission in missions:
        assert mission.expires_at > datetime(2024, 1, 22, 12, 0, tzinfo=timezone.utc)

def test_missions_per_period_must_be_positive(store, calendar):
    with pytest.raises(ConfigurationError):
        MissionGenerator(store, DEFAULT_CATALOG, calendar, missions_per_period=0)


@pytest.mark.asyncio
async def test_concurrent_generation_creates_one_set(yielding_store, calendar, test_user_id):
    generator = MissionGenerator(yielding_store, DEFAULT_CATALOG, calendar, rng=random.Random(9))

    results = await asyncio.gather(*[
        generator.ensure_missions_for_period(test_user_id, PeriodType.DAILY)
        for _ in range(5)
    ])

    assert results.count(True) == 1
    missions = await yielding_store.list_active_missions(test_user_id, PeriodType.DAILY, calendar.now())
    assert len(missions) == 3


# ============================================================================
# Progress Tests
# ============================================================================

@pytest.mark.asyncio
async def test_advance_increments_progress(store, calendar, mission_factory):
    mission = await mission_factory(mission_key="watch_3", target=3)
    tracker = MissionProgressTracker(store, calendar)

    updated = await tracker.advance("user-1", "watch_3")

    assert len(updated) == 1
    assert updated[0].id == mission.id
    assert updated[0].current == 1
    assert updated[0].is_completed is False


@pytest.mark.asyncio
async def test_advance_clamps_at_target(store, calendar, mission_factory):
    mission = await mission_factory(mission_key="watch_3", target=3)
    tracker = MissionProgressTracker(store, calendar)

    for _ in range(4):
        await tracker.advance("user-1", "watch_3")

    stored = await store.get_mission(mission.id)
    assert stored.current == 3
    assert stored.is_completed is True


@pytest.mark.asyncio
async def test_advance_by_large_amount_clamps(store, calendar, mission_factory):
    mission = await mission_factory(mission_key="react_5", target=5)
    tracker = MissionProgressTracker(store, calendar)

    updated = await tracker.advance("user-1", "react_5", amount=50)

    assert updated[0].current == 5
    assert updated[0].is_completed is True
    assert (await store.get_mission(mission.id)).current == 5


@pytest.mark.asyncio
async def test_advance_moves_daily_and_weekly_with_same_key(store, calendar, mission_factory):
    daily = await mission_factory(mission_key="watch_any", target=3)
    weekly = await mission_factory(
        mission_key="watch_any",
        period_type=PeriodType.WEEKLY,
        target=10,
        expires_at=calendar.end_of_week(),
    )
    tracker = MissionProgressTracker(store, calendar)

    updated = await tracker.advance("user-1", "watch_any", amount=2)

    assert {m.id for m in updated} == {daily.id, weekly.id}
    assert (await store.get_mission(daily.id)).current == 2
    assert (await store.get_mission(weekly.id)).current == 2


@pytest.mark.asyncio
async def test_advance_skips_expired_missions(store, calendar, mission_factory):
    expired = await mission_factory(
        mission_key="watch_3",
        expires_at=datetime(2024, 1, 16, 23, 59, 59, tzinfo=timezone.utc),
    )
    tracker = MissionProgressTracker(store, calendar)

    assert await tracker.advance("user-1", "watch_3") == []
    assert (await store.get_mission(expired.id)).current == 0


@pytest.mark.asyncio
async def test_advance_skips_claimed_missions(store, calendar, mission_factory):
    claimed = await mission_factory(
        mission_key="watch_3", current=3, is_completed=True, is_claimed=True
    )
    tracker = MissionProgressTracker(store, calendar)

    assert await tracker.advance("user-1", "watch_3") == []
    stored = await store.get_mission(claimed.id)
    assert stored.current == 3
    assert stored.is_claimed is True


@pytest.mark.asyncio
async def test_advance_ignores_other_users(store, calendar, mission_factory):
    other = await mission_factory(user_id="someone-else", mission_key="watch_3")
    tracker = MissionProgressTracker(store, calendar)

    assert await tracker.advance("user-1", "watch_3") == []
    assert (await store.get_mission(other.id)).current == 0


@pytest.mark.asyncio
async def test_advance_unknown_key_is_noop(store, calendar, mission_factory):
    await mission_factory(mission_key="watch_3")
    tracker = MissionProgressTracker(store, calendar)

    assert await tracker.advance("user-1", "not_a_mission") == []


@pytest.mark.asyncio
async def test_completed_mission_stays_completed(store, calendar, mission_factory):
    mission = await mission_factory(mission_key="watch_1", target=1)
    tracker = MissionProgressTracker(store, calendar)

    await tracker.advance("user-1", "watch_1")
    updated = await tracker.advance("user-1", "watch_1")

    assert updated[0].is_completed is True
    assert updated[0].current == 1
    assert (await store.get_mission(mission.id)).is_completed is True


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1, 1.5, True, "2"])
async def test_advance_rejects_invalid_amount(store, calendar, amount):
    tracker = MissionProgressTracker(store, calendar)

    with pytest.raises(ValidationError):
        await tracker.advance("user-1", "watch_3", amount=amount)


@pytest.mark.asyncio
async def test_advance_past_deadline_after_clock_moves(store, calendar, clock, mission_factory):
    mission = await mission_factory(mission_key="watch_3")
    tracker = MissionProgressTracker(store, calendar)

    clock.advance(days=1)

    assert await tracker.advance("user-1", "watch_3") == []
    assert (await store.get_mission(mission.id)).current == 0
