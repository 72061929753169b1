import asyncio

from app.chat.aggregator import aggregate_conversations
from app.chat.enrichment import EnrichmentFacade
from app.chat.receipts import ReadReceiptTracker
from app.store.base import MESSAGES, PROFILES
from tests.fakes.builders import ALICE, BOB, CAROL, NOW, message_row


def summaries_for(store, me=ALICE):
    return aggregate_conversations(store.rows(MESSAGES), me, NOW)


def facade(store, profiles, timeout=0.5):
    return EnrichmentFacade(profiles, ReadReceiptTracker(store).unread_count, timeout=timeout)


def test_enrich_all_fills_names_and_unread_counts(store, profiles, seed_messages):
    seed_messages(
        message_row(BOB, ALICE, 5),
        message_row(BOB, ALICE, 4),
        message_row(CAROL, ALICE, 3),
        message_row(ALICE, CAROL, 1),
    )

    enriched = asyncio.run(facade(store, profiles).enrich_all(ALICE, summaries_for(store)))

    assert [(s.counterpart_id, s.counterpart_name, s.unread_count) for s in enriched] == [
        (CAROL, "Unknown User", 1),
        (BOB, "Bob Jones", 2),
    ]


def test_one_failing_lookup_does_not_sink_the_batch(store, profiles, seed_messages):
    seed_messages(message_row(BOB, ALICE, 5), message_row(CAROL, ALICE, 3))
    store.fail("select", table=PROFILES)
    store.fail("count", table=MESSAGES, times=1)

    enriched = asyncio.run(facade(store, profiles).enrich_all(ALICE, summaries_for(store)))

    assert all(s.counterpart_name == "Unknown User" for s in enriched)
    # one count failed and fell back to 0, the other still came through
    assert sorted(s.unread_count for s in enriched) == [0, 1]


def test_slow_lookups_time_out_to_the_fallback(store, profiles, seed_messages):
    seed_messages(message_row(BOB, ALICE, 5))
    store.delay("select", 1.0, table=PROFILES)

    [enriched] = asyncio.run(
        facade(store, profiles, timeout=0.05).enrich_all(ALICE, summaries_for(store))
    )

    assert enriched.counterpart_name == "Unknown User"
    assert enriched.unread_count == 1


def test_progressive_enrichment_starts_with_placeholders(store, profiles, seed_messages):
    seed_messages(message_row(BOB, ALICE, 5), message_row(CAROL, ALICE, 3))

    async def scenario():
        return [
            partial
            async for partial in facade(store, profiles).enrich_progressively(
                ALICE, summaries_for(store)
            )
        ]

    emissions = asyncio.run(scenario())

    assert 2 <= len(emissions) <= 3
    assert [s.unread_count for s in emissions[0]] == [0, 0]
    assert [s.counterpart_name for s in emissions[0]] == ["Unknown User", "Unknown User"]
    assert [(s.counterpart_name, s.unread_count) for s in emissions[-1]] == [
        ("Unknown User", 1),
        ("Bob Jones", 1),
    ]


def test_progressive_enrichment_of_nothing_yields_once(store, profiles):
    async def scenario():
        return [p async for p in facade(store, profiles).enrich_progressively(ALICE, [])]

    assert asyncio.run(scenario()) == [[]]


class HangingProfiles:
    """Profile lookups that never finish, recording whether they were cancelled."""

    def __init__(self):
        self.started = 0
        self.cancelled = 0

    async def get_profile(self, user_id):
        self.started += 1
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


def test_closing_the_stream_cancels_in_flight_lookups(store, seed_messages):
    seed_messages(message_row(BOB, ALICE, 5), message_row(CAROL, ALICE, 3))
    hanging = HangingProfiles()
    enrichment = EnrichmentFacade(hanging, ReadReceiptTracker(store).unread_count, timeout=None)

    async def scenario():
        partials = enrichment.enrich_progressively(ALICE, summaries_for(store))
        await partials.__anext__()
        waiting = asyncio.ensure_future(partials.__anext__())
        await asyncio.sleep(0.01)
        waiting.cancel()
        try:
            await waiting
        except asyncio.CancelledError:
            pass
        await partials.aclose()
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert hanging.started == 2
    assert hanging.cancelled == 2


def test_cancelling_enrich_all_cancels_every_lookup(store, seed_messages):
    seed_messages(message_row(BOB, ALICE, 5), message_row(CAROL, ALICE, 3))
    hanging = HangingProfiles()
    enrichment = EnrichmentFacade(hanging, ReadReceiptTracker(store).unread_count, timeout=None)

    async def scenario():
        task = asyncio.ensure_future(enrichment.enrich_all(ALICE, summaries_for(store)))
        await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert hanging.cancelled == hanging.started == 2
