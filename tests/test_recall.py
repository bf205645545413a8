import asyncio

from agent.core.prompt import NOTHING_REMEMBERED
from tests.fakes import FakeGenerator, FakeMemory, make_service, match


WINDOW = 0.05


def test_trigger_collects_question_across_requests_and_answers_once():
    memory = FakeMemory(matches=[match("we ate at luigi's on main st.", 0.12)])
    generator = FakeGenerator("it was luigi's!")
    service = make_service(
        memory=memory, generator=generator, question_collection_seconds=WINDOW
    )

    async def scenario():
        await service.handle_segments("s1", ["I forgot"])
        buffer = service.store.get("s1")
        assert buffer.trigger_open is True
        assert buffer.trigger_cycle == 1

        await service.handle_segments("s1", ["what was the name"])
        assert buffer.trigger_cycle == 1
        assert buffer.collected_question == ["i forgot", "what was the name"]

        await asyncio.sleep(WINDOW * 4)
        await service.shutdown()
        return buffer

    buffer = asyncio.run(scenario())

    assert memory.searches == [("i forgot what was the name", "s1", 5)]
    assert generator.calls == [("i forgot what was the name", "we ate at luigi's on main st.")]
    assert list(buffer.responses) == ["it was luigi's!"]
    assert buffer.response_sent is True
    assert buffer.trigger_open is False
    assert buffer.collected_question == []


def test_second_trigger_phrase_appends_instead_of_reopening(memory):
    service = make_service(memory=memory)
    service.store.get("s1")

    async def scenario():
        await service.handle_segments("s1", ["i forgot", "i really don't remember"])
        tasks = service.timers.pending()
        await service.shutdown()
        return tasks

    pending = asyncio.run(scenario())

    buffer = service.store.get("s1")
    assert buffer.trigger_cycle == 1
    assert buffer.collected_question == ["i forgot", "i really don't remember"]
    # one recall window plus one reaper
    assert pending == 2


class SlowMemory(FakeMemory):
    async def save_text(self, text: str, session_id: str) -> str:
        await asyncio.sleep(0.05)
        return await super().save_text(text, session_id)


def test_overlapping_requests_for_one_session_open_one_window():
    memory = SlowMemory()
    service = make_service(memory=memory)

    async def scenario():
        await asyncio.gather(
            service.handle_segments("s1", ["I forgot."]),
            service.handle_segments("s1", ["I don't remember either."]),
        )
        await service.shutdown()

    asyncio.run(scenario())

    buffer = service.store.get("s1")
    assert buffer.trigger_cycle == 1
    assert buffer.collected_question == ["i forgot.", "i don't remember either."]
    assert memory.saved == [("i forgot.", "s1"), ("i don't remember either.", "s1")]


def test_duplicate_dispatch_is_a_noop(generator):
    memory = FakeMemory(matches=[match("dentist on friday at 3", 0.2)])
    service = make_service(memory=memory, generator=generator)

    async def scenario():
        service.watcher.on_fragment("s1", "i forgot when the dentist is")
        cycle = service.store.get("s1").trigger_cycle
        first = await service.dispatcher.dispatch("s1", cycle)
        second = await service.dispatcher.dispatch("s1", cycle)
        await service.shutdown()
        return first, second

    first, second = asyncio.run(scenario())

    assert first == generator.answer
    assert second is None
    assert len(generator.calls) == 1
    assert list(service.store.get("s1").responses) == [generator.answer]


def test_dispatch_for_a_stale_cycle_is_a_noop(generator):
    service = make_service(generator=generator)

    async def scenario():
        service.watcher.on_fragment("s1", "i forgot")
        await service.dispatcher.dispatch("s1")
        service.watcher.on_fragment("s1", "i forgot again")
        stale = await service.dispatcher.dispatch("s1", cycle=1)
        await service.shutdown()
        return stale

    assert asyncio.run(scenario()) is None
    buffer = service.store.get("s1")
    assert buffer.trigger_cycle == 2
    assert buffer.trigger_open is True
    assert buffer.collected_question == ["i forgot again"]


def test_dispatch_without_open_window_is_a_noop(generator):
    service = make_service(generator=generator)
    service.store.get("s1")

    assert asyncio.run(service.dispatcher.dispatch("s1")) is None
    assert asyncio.run(service.dispatcher.dispatch("unknown")) is None
    assert "unknown" not in service.store
    assert generator.calls == []


def _answer_for(matches, generator):
    memory = FakeMemory(matches=matches)
    service = make_service(memory=memory, generator=generator)

    async def scenario():
        service.watcher.on_fragment("s1", "i don't remember the wifi password")
        message = await service.dispatcher.dispatch("s1")
        await service.shutdown()
        return message

    return asyncio.run(scenario())


def test_distance_at_threshold_is_accepted(generator):
    matches = [
        match("wifi password is sunflower42", 0.4),
        match("router is in the hallway", 0.55),
        match("isp support number", 0.7),
        match("bought a new modem", 0.8),
        match("the guest network is open", 0.9),
    ]

    message = _answer_for(matches, generator)

    assert message == generator.answer
    question, context = generator.calls[0]
    assert question == "i don't remember the wifi password"
    assert context == "\n".join(m.document for m in matches)


def test_distance_above_threshold_is_rejected(generator):
    message = _answer_for([match("wifi password is sunflower42", 0.41)], generator)

    assert message == NOTHING_REMEMBERED
    assert generator.calls == []


def test_no_documents_means_nothing_remembered(generator):
    assert _answer_for([], generator) == NOTHING_REMEMBERED
    assert generator.calls == []


def test_waiting_answer_is_returned_on_next_ingestion(generator):
    memory = FakeMemory(matches=[match("parked on level 3", 0.1)])
    service = make_service(
        memory=memory, generator=generator, question_collection_seconds=WINDOW
    )

    async def scenario():
        first = await service.handle_segments("s1", ["forgot where i parked"])
        await asyncio.sleep(WINDOW * 4)
        second = await service.handle_segments("s1", ["anyway"])
        third = await service.handle_segments("s1", ["so"])
        await service.shutdown()
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first is None
    assert second == generator.answer
    assert third is None


def test_drain_responses_empties_the_outbox(generator):
    service = make_service(generator=generator)
    buffer = service.store.get("s1")
    buffer.responses.extend(["one", "two"])

    assert service.drain_responses("s1") == ["one", "two"]
    assert service.drain_responses("s1") == []
    assert service.drain_responses("missing") == []


def test_new_cycle_after_resolution(generator):
    service = make_service(generator=generator, question_collection_seconds=WINDOW)

    async def scenario():
        await service.handle_segments("s1", ["i forgot"])
        await asyncio.sleep(WINDOW * 4)
        await service.handle_segments("s1", ["ugh i forgot something else"])
        buffer = service.store.get("s1")
        state = (buffer.trigger_open, buffer.response_sent, buffer.trigger_cycle)
        await service.shutdown()
        return state

    assert asyncio.run(scenario()) == (True, False, 2)


def test_trigger_matching_is_case_insensitive_substring():
    service = make_service()

    assert service.watcher.matches("I totally FORGOT")
    assert service.watcher.matches("i don't remember")
    assert service.watcher.matches("unforgotten")
    assert not service.watcher.matches("i do not remember")
