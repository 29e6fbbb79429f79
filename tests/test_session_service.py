"""Session orchestration against a scripted generator.

Covers the plan/step lifecycle end to end:
1.  A planned request executes step by step until the plan is complete.
2.  Executing past the end is a no-op that reports completion.
3.  A failed generator call leaves the cursor in place so the step can be retried.
4.  Free chat draws without touching the plan.
"""
from __future__ import annotations

import json
import threading

from brainstormer.agents.errors import GeneratorProtocolError, GeneratorUnavailable
from brainstormer.agents.generator import GeneratorRole
from brainstormer.models.elements import connectors_in, shapes_in
from brainstormer.models.session import BoardSession, SessionState
from brainstormer.services.session_service import (
    PLAN_COMPLETE_REPLY,
    SessionStore,
    execute_next_step,
    free_chat,
    request_plan,
)

REQUEST = "Design a system where users reach servers through a load balancer"
PLAN = json.dumps({"steps": ["Add a user", "Add a load balancer", "Connect user to load balancer"]})
EMPTY_STEP = json.dumps({"reply": "", "elements": []})


class ScriptedGenerator:
    """Replays queued outputs per role; an exception in the queue is raised."""

    def __init__(self, script=None, default=""):
        self.script = {role: list(outputs) for role, outputs in (script or {}).items()}
        self.default = default
        self.calls = []

    def invoke(self, role, user_text, board_context="", images=None):
        self.calls.append({"role": role, "text": user_text, "context": board_context, "images": images})
        queue = self.script.get(role)
        output = queue.pop(0) if queue else self.default
        if isinstance(output, Exception):
            raise output
        return output

    def roles(self):
        return [call["role"] for call in self.calls]


def _planned_session(generator):
    session = SessionStore().open()
    result = request_plan(session, REQUEST, generator)
    assert result.error is None
    return session


def test_store_lifecycle():
    store = SessionStore()
    session = store.open("conn-1")
    assert session.id == "conn-1"
    assert "conn-1" in store
    assert store.get("conn-1") is session
    assert len(store) == 1
    assert store.close("conn-1") is session
    assert store.close("conn-1") is None
    assert len(store) == 0
    assert store.open().id != store.open().id


def test_plan_then_execute_until_complete():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [PLAN]}, default=EMPTY_STEP)
    session = _planned_session(generator)
    assert session.plan_steps == ["Add a user", "Add a load balancer", "Connect user to load balancer"]
    assert session.state == SessionState.READY
    assert session.original_request == REQUEST

    first = execute_next_step(session, generator)
    assert (first.step_index, first.next_step_index, first.plan_complete) == (0, 1, False)
    assert [shape.label for shape in shapes_in(first.new_elements)] == ["User"]
    assert first.reply == "Step 1: Add a user"

    second = execute_next_step(session, generator)
    assert [shape.type for shape in shapes_in(second.new_elements)] == ["diamond"]
    assert len(connectors_in(second.new_elements)) == 1

    third = execute_next_step(session, generator)
    assert third.new_elements == []
    assert third.plan_complete is True
    assert third.next_step_index == 3
    assert "already connected" in third.reply

    assert session.current_step == 3
    assert session.plan_complete is True
    assert session.state == SessionState.COMPLETE
    assert sorted(shape.label for shape in shapes_in(session.elements)) == ["Load Balancer", "User"]
    connector = connectors_in(session.elements)[0]
    user, balancer = shapes_in(session.elements)
    assert (connector.start_id, connector.end_id) == (user.id, balancer.id)


def test_executing_past_completion_is_a_no_op():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: ['["Add a cache"]']}, default=EMPTY_STEP)
    session = _planned_session(generator)
    execute_next_step(session, generator)
    calls_before = len(generator.calls)
    element_count = len(session.elements)

    again = execute_next_step(session, generator)
    assert again.reply == PLAN_COMPLETE_REPLY
    assert again.new_elements == []
    assert again.plan_complete is True
    assert again.next_step_index == 1
    assert len(generator.calls) == calls_before
    assert len(session.elements) == element_count
    assert session.current_step == 1


def test_structured_step_output_is_used_directly():
    step_output = json.dumps(
        {
            "reply": "Added the cache tier",
            "elements": [
                {"id": "c", "type": "ellipse", "label": "Redis"},
                {"id": "d", "label": "Postgres"},
                {"type": "arrow", "start": "c", "end": "d"},
            ],
        }
    )
    generator = ScriptedGenerator(
        {GeneratorRole.STEP_PLANNER: ['["Add a cache and a database"]'], GeneratorRole.STEP_EXECUTOR: [step_output]}
    )
    session = _planned_session(generator)
    result = execute_next_step(session, generator)
    assert result.reply == "Added the cache tier"
    assert [shape.label for shape in shapes_in(result.new_elements)] == ["Redis", "Postgres"]
    assert len(connectors_in(session.elements)) == 1
    assert result.plan_complete is True


def test_step_sees_board_context():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [PLAN]}, default=EMPTY_STEP)
    session = _planned_session(generator)
    execute_next_step(session, generator)
    execute_next_step(session, generator)
    executor_calls = [call for call in generator.calls if call["role"] == GeneratorRole.STEP_EXECUTOR]
    assert executor_calls[0]["text"] == "Add a user"
    assert executor_calls[0]["context"] == "[]"
    assert '"label":"User"' in executor_calls[1]["context"]


def test_unavailable_generator_keeps_cursor_for_retry():
    retry_output = json.dumps({"reply": "Added user", "elements": [{"type": "rectangle", "label": "User"}]})
    generator = ScriptedGenerator(
        {
            GeneratorRole.STEP_PLANNER: [PLAN],
            GeneratorRole.STEP_EXECUTOR: [GeneratorUnavailable("model offline"), retry_output],
        }
    )
    session = _planned_session(generator)

    failed = execute_next_step(session, generator)
    assert "model offline" in failed.error
    assert (failed.step_index, failed.next_step_index, failed.plan_complete) == (0, 0, False)
    assert failed.new_elements == []
    assert session.current_step == 0
    assert session.elements == []
    assert session.state == SessionState.READY

    retried = execute_next_step(session, generator)
    assert retried.error is None
    assert retried.reply == "Added user"
    assert session.current_step == 1


def test_protocol_error_falls_back_to_keywords():
    generator = ScriptedGenerator(
        {
            GeneratorRole.STEP_PLANNER: ['["Add a database"]'],
            GeneratorRole.STEP_EXECUTOR: [GeneratorProtocolError("no content")],
        }
    )
    session = _planned_session(generator)
    result = execute_next_step(session, generator)
    assert result.error is None
    assert [shape.label for shape in shapes_in(result.new_elements)] == ["Database"]


def test_execute_without_plan():
    result = execute_next_step(BoardSession(), ScriptedGenerator())
    assert result.error
    assert result.plan_complete is False


def test_execute_while_step_running_is_rejected():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [PLAN]}, default=EMPTY_STEP)
    session = _planned_session(generator)
    session.state = SessionState.EXECUTING
    calls_before = len(generator.calls)
    result = execute_next_step(session, generator)
    assert result.error
    assert len(generator.calls) == calls_before
    assert session.current_step == 0


def test_new_plan_replaces_old_and_resets_cursor():
    generator = ScriptedGenerator(
        {GeneratorRole.STEP_PLANNER: [PLAN, '["Add a queue"]']},
        default=EMPTY_STEP,
    )
    session = _planned_session(generator)
    execute_next_step(session, generator)
    replanned = request_plan(session, "Now add messaging", generator)
    assert replanned.steps == ["Add a queue"]
    assert session.plan_steps == ["Add a queue"]
    assert session.current_step == 0
    assert session.plan_complete is False
    assert len(shapes_in(session.elements)) == 1


def test_failed_planning_keeps_previous_plan():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [PLAN, GeneratorUnavailable("timeout")]})
    session = _planned_session(generator)
    result = request_plan(session, "Something else", generator)
    assert "timeout" in result.error
    assert result.steps == []
    assert len(session.plan_steps) == 3
    assert session.state == SessionState.READY


def test_echoed_plan_becomes_generic_step():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [json.dumps([REQUEST])]})
    session = _planned_session(generator)
    assert session.plan_steps == ["Break the request into components and connections"]


def test_empty_plan_request_is_rejected():
    generator = ScriptedGenerator()
    result = request_plan(BoardSession(), "   ", generator)
    assert result.error
    assert generator.calls == []


def test_plan_records_chat_history():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [PLAN]})
    session = _planned_session(generator)
    assert [message.sender for message in session.chat_history] == ["user", "bot"]
    assert session.chat_history[1].text.startswith("Plan:\n1. Add a user")


def test_free_chat_draws_without_touching_plan():
    chat_output = json.dumps({"reply": "Sure, here is a cache", "elements": [{"type": "ellipse", "label": "Cache"}]})
    generator = ScriptedGenerator(
        {
            GeneratorRole.STEP_PLANNER: [PLAN],
            GeneratorRole.INTENT_CLASSIFIER: ['{"intent": "chat", "type": "chat"}'],
            GeneratorRole.FREE_CHAT: [chat_output],
        },
        default=EMPTY_STEP,
    )
    session = _planned_session(generator)
    execute_next_step(session, generator)

    result = free_chat(session, "Can you add a cache?", generator)
    assert result.reply == "Sure, here is a cache"
    assert [shape.label for shape in shapes_in(result.new_elements)] == ["Cache"]
    assert session.current_step == 1
    assert len(session.plan_steps) == 3
    assert generator.roles()[-2:] == [GeneratorRole.INTENT_CLASSIFIER, GeneratorRole.FREE_CHAT]
    assert "Recent conversation" in generator.calls[-1]["text"]


def test_free_chat_has_no_keyword_fallback():
    generator = ScriptedGenerator(
        {
            GeneratorRole.INTENT_CLASSIFIER: ['{"intent": "chat", "type": "chat"}'],
            GeneratorRole.FREE_CHAT: ["A database stores data."],
        }
    )
    session = BoardSession()
    result = free_chat(session, "Add a database", generator, history_tail=[])
    assert result.reply == "A database stores data."
    assert result.new_elements == []
    assert session.elements == []
    assert generator.calls[-1]["text"] == "Add a database"


def test_free_chat_unknown_intent_uses_step_executor():
    generator = ScriptedGenerator({GeneratorRole.INTENT_CLASSIFIER: ["no idea"]}, default='{"reply": "ok"}')
    result = free_chat(BoardSession(), "Sketch a CDN", generator, history_tail=[])
    assert result.reply == "ok"
    assert generator.roles() == [GeneratorRole.INTENT_CLASSIFIER, GeneratorRole.STEP_EXECUTOR]


def test_free_chat_uses_supplied_history_and_images():
    generator = ScriptedGenerator({GeneratorRole.INTENT_CLASSIFIER: ['{"intent": "look", "type": "multimodal"}']})
    history = [{"role": "user", "content": "I like diamonds"}, {"sender": "bot", "text": "Noted"}]
    free_chat(BoardSession(), "What is in this picture?", generator, history_tail=history, images=["aGk="])
    last = generator.calls[-1]
    assert last["role"] == GeneratorRole.FREE_CHAT
    assert "user: I like diamonds\nbot: Noted" in last["text"]
    assert last["images"] == ["aGk="]


def test_free_chat_unavailable_reports_error():
    generator = ScriptedGenerator(
        {
            GeneratorRole.INTENT_CLASSIFIER: ['{"intent": "chat", "type": "chat"}'],
            GeneratorRole.FREE_CHAT: [GeneratorUnavailable("quota exceeded")],
        }
    )
    session = BoardSession()
    result = free_chat(session, "hello", generator)
    assert "quota exceeded" in result.error
    assert session.chat_history == []


def test_session_advance_is_bounded():
    session = BoardSession()
    session.replace_plan(["one"], "req")
    session.advance()
    session.advance()
    assert session.current_step == 1
    assert session.plan_complete is True
    assert session.current_step_text is None


def test_non_finite_coordinates_do_not_poison_the_session():
    hostile = '{"reply": "ok", "elements": [{"label": "A", "x": Infinity, "y": 1e400, "width": NaN}]}'
    generator = ScriptedGenerator(
        {
            GeneratorRole.STEP_PLANNER: ['["Add a user", "Add a cache"]'],
            GeneratorRole.STEP_EXECUTOR: [hostile],
        },
        default=EMPTY_STEP,
    )
    session = _planned_session(generator)

    first = execute_next_step(session, generator)
    shape = shapes_in(first.new_elements)[0]
    assert (shape.x, shape.y, shape.width) == (100, 100, 120)

    second = execute_next_step(session, generator)
    assert second.error is None
    assert second.plan_complete is True
    assert '"x":100' in generator.calls[-1]["context"]


def test_overlapping_step_is_refused():
    entered = threading.Event()
    release = threading.Event()

    class SlowGenerator(ScriptedGenerator):
        def invoke(self, role, user_text, board_context="", images=None):
            if role == GeneratorRole.STEP_EXECUTOR:
                entered.set()
                release.wait(5)
            return super().invoke(role, user_text, board_context, images)

    generator = SlowGenerator({GeneratorRole.STEP_PLANNER: [PLAN]}, default=EMPTY_STEP)
    session = _planned_session(generator)
    results = []
    worker = threading.Thread(target=lambda: results.append(execute_next_step(session, generator)))
    worker.start()
    try:
        assert entered.wait(5)
        overlapping = execute_next_step(session, generator)
    finally:
        release.set()
        worker.join(5)

    assert overlapping.error == "A step is already running for this session."
    assert overlapping.new_elements == []
    assert results[0].error is None
    assert session.current_step == 1
    assert [call["role"] for call in generator.calls].count(GeneratorRole.STEP_EXECUTOR) == 1


def test_step_lock_is_released_after_each_step():
    generator = ScriptedGenerator({GeneratorRole.STEP_PLANNER: [PLAN]}, default=EMPTY_STEP)
    session = _planned_session(generator)
    execute_next_step(session, generator)
    assert session.step_lock.acquire(blocking=False)
    try:
        assert execute_next_step(session, generator).error == "A step is already running for this session."
    finally:
        session.step_lock.release()
    assert execute_next_step(session, generator).error is None
