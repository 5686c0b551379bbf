"""
Scenario tests for the prompt orchestration pipeline.

The real ModelManager, router and gateway run against a scripted provider,
so these tests cover stage order, model routing and every stage fallback.
"""

import pytest
from unittest.mock import Mock

from src.models.providers.base import ModelLoading, ModelError
from src.models.router import TaskCategory
from src.pipeline.orchestration.orchestrator import (
    PromptOrchestrator, CHUNK_FALLBACK_TEXT, PLAN_HEADING, ERROR_PREFIX, fallback_plan,
)
from src.pipeline.orchestration.simple import GREETING_RESPONSE
from src.pipeline.orchestration.types import PipelineRequest, ProcessingStage

CODING_PROMPT = "Write a function to reverse a string in Python"


@pytest.fixture
def orchestrator(manager, store):
    return PromptOrchestrator(manager, history=store, files=store, reporter=store)


def run(orchestrator, store, prompt, project_id="proj-1"):
    store.add_user_message(project_id, prompt)
    return orchestrator.run(PipelineRequest(project_id=project_id, prompt=prompt))


def assistant_messages(store, project_id="proj-1"):
    return [m for m in store.list_messages(project_id) if m.role == "assistant"]


class TestSimpleInteractions:

    def test_greeting_skips_model_pipeline(self, orchestrator, store, scripted_provider):
        """
        Test: "hello" prompt
        How: Run the orchestrator with a greeting
        Ensures: Canned reply, zero backend calls, no stages recorded
        """
        result = run(orchestrator, store, "hello")

        assert result.ok
        assert result.short_circuited
        assert result.final == GREETING_RESPONSE
        assert result.stages == []
        assert result.metadata.processing_stage == ProcessingStage.COMPLETED
        assert scripted_provider.calls == []
        assert [m.message for m in assistant_messages(store)] == [GREETING_RESPONSE]

    @pytest.mark.parametrize("prompt", ["Thanks!", "help me", "ok bye", "Good morning"])
    def test_other_simple_phrases_never_call_models(self, orchestrator, store, scripted_provider, prompt):
        result = run(orchestrator, store, prompt)

        assert result.short_circuited
        assert scripted_provider.calls == []


class TestCodingScenario:

    def test_full_run_with_refinement(self, orchestrator, store, scripted_provider):
        """
        Test: Coding request end to end
        How: Classifier says CODING, breakdown yields three chunks
        Ensures: Stages run in order, refinement runs, search is skipped
        """
        scripted_provider.responses.update({
            "classify": "CODING",
            "breakdown": "Here you go:\nCHUNK: signature\nCHUNK: body\nnot a chunk\nCHUNK: tests",
            "execute": lambda prompt, model: "def reverse(s): return s[::-1]",
        })

        result = run(orchestrator, store, CODING_PROMPT)

        assert result.ok
        assert result.final == "refine output"
        assert result.metadata.task_types == [TaskCategory.CODING]
        assert result.metadata.processing_stage == ProcessingStage.COMPLETED
        assert result.metadata.iteration_count == 3
        assert scripted_provider.stages_called() == [
            "classify", "optimize", "plan", "breakdown",
            "execute", "execute", "execute",
            "refine", "refine",
        ]
        assert "search" not in scripted_provider.stages_called()
        assert result.degraded_stages == []

    def test_models_follow_stage_categories(self, orchestrator, store, scripted_provider, manager):
        scripted_provider.responses.update({"classify": "CODING", "breakdown": "CHUNK: one"})

        run(orchestrator, store, CODING_PROMPT)

        first_model = {stage: models[0] for stage, models in manager.candidates.items()}
        models_by_stage = {stage: model for stage, model, _ in scripted_provider.calls}
        assert models_by_stage["classify"] == first_model[TaskCategory.THINKING]
        assert models_by_stage["optimize"] == first_model[TaskCategory.GENERATIVE]
        assert models_by_stage["plan"] == first_model[TaskCategory.PLANNING]
        assert models_by_stage["breakdown"] == first_model[TaskCategory.PLANNING]
        assert models_by_stage["execute"] == first_model[TaskCategory.CODING]
        assert models_by_stage["refine"] == first_model[TaskCategory.CODE_ANALYSIS]

    def test_progress_updates_and_final_reply_are_stored(self, orchestrator, store, scripted_provider):
        scripted_provider.responses.update({"classify": "CODING", "breakdown": "CHUNK: a\nCHUNK: b"})

        result = run(orchestrator, store, CODING_PROMPT)

        messages = assistant_messages(store)
        assert len(messages) == 3
        assert messages[0].message == "🔍 Analyzing your request... (Task type: CODING)"
        assert messages[0].metadata["processing_stage"] == "CLASSIFYING"
        assert messages[1].message == "⚙️ Processing 2 tasks..."
        assert messages[1].metadata["processing_stage"] == "EXECUTING"
        assert messages[2].message == result.final
        assert messages[2].metadata == {
            "task_types": ["CODING"],
            "processing_stage": "COMPLETED",
            "iteration_count": 2,
        }

    def test_chunks_see_previous_results(self, orchestrator, store, scripted_provider):
        scripted_provider.responses.update({
            "classify": "THINKING",
            "breakdown": "CHUNK: first\nCHUNK: second",
            "execute": lambda prompt, model: "result-2" if "Current task: second" in prompt else "result-1",
        })

        result = run(orchestrator, store, "Compare merge sort and quicksort")

        execute_prompts = [p for _, _, p in scripted_provider.calls_for("execute")]
        assert "Previous chunk result:\nresult-1" not in execute_prompts[0]
        assert "Previous chunk result:\nresult-1" in execute_prompts[1]
        assert result.final == "result-1\n\nresult-2"

    def test_refinement_stops_when_code_looks_good(self, orchestrator, store, scripted_provider):
        scripted_provider.responses.update({
            "classify": "CODING",
            "breakdown": "CHUNK: only",
            "execute": "draft code",
            "refine": "Looks good, no issues found.",
        })

        result = run(orchestrator, store, CODING_PROMPT)

        assert result.final == "draft code"
        assert len(scripted_provider.calls_for("refine")) == 1

    def test_failed_refinement_pass_keeps_last_good_result(self, orchestrator, store, scripted_provider):
        passes = iter(["improved code", ModelError("backend down")])
        scripted_provider.responses.update({
            "classify": "CODING",
            "breakdown": "CHUNK: only",
            "execute": "draft code",
            "refine": lambda prompt, model: next(passes, ModelError("backend down")),
        })

        result = run(orchestrator, store, CODING_PROMPT)

        assert result.ok
        assert result.final == "improved code"
        assert "refine" in result.degraded_stages


class TestPlanningShortCircuit:

    def test_planning_only_returns_plan(self, orchestrator, store, scripted_provider):
        """
        Test: Request classified as exactly PLANNING
        How: Classifier answers "PLANNING"
        Ensures: Final reply is the heading plus the plan; no chunking or execution
        """
        plan = "1. Gather requirements\n2. Design schema\n3. Ship"
        scripted_provider.responses.update({"classify": "PLANNING", "plan": plan})

        result = run(orchestrator, store, "Plan a roadmap for a todo app")

        assert result.ok
        assert result.final == f"{PLAN_HEADING}{plan}"
        assert result.metadata.processing_stage == ProcessingStage.COMPLETED
        assert "breakdown" not in scripted_provider.stages_called()
        assert "execute" not in scripted_provider.stages_called()
        assert assistant_messages(store)[-1].message == result.final

    def test_planning_with_other_categories_keeps_going(self, orchestrator, store, scripted_provider):
        scripted_provider.responses.update({"classify": "PLANNING, CODING", "breakdown": "CHUNK: x"})

        result = run(orchestrator, store, "Plan and build a todo app")

        assert result.metadata.task_types == [TaskCategory.PLANNING, TaskCategory.CODING]
        assert "execute" in scripted_provider.stages_called()
        # primary category routes execution
        execute_model = scripted_provider.calls_for("execute")[0][1]
        assert execute_model == orchestrator.stages.model_manager.candidates[TaskCategory.PLANNING][0]


class TestStageFallbacks:

    def test_classification_failure_defaults_to_thinking(self, orchestrator, store, scripted_provider):
        scripted_provider.responses["classify"] = ModelLoading("503 model loading")

        result = run(orchestrator, store, "Explain recursion")

        assert result.ok
        assert result.metadata.task_types == [TaskCategory.THINKING]
        assert result.metadata.processing_stage == ProcessingStage.COMPLETED
        assert result.stages[0].stage == "classify"
        assert not result.stages[0].ok
        # no classification progress message when classification failed
        assert not any(m.message.startswith("🔍") for m in assistant_messages(store))

    def test_unparseable_classification_defaults_to_thinking(self, orchestrator, store, scripted_provider):
        scripted_provider.responses["classify"] = "I am not sure"

        result = run(orchestrator, store, "Explain recursion")

        assert result.metadata.task_types == [TaskCategory.THINKING]
        assert result.stages[0].ok and result.stages[0].fallback_applied

    def test_failed_optimize_and_plan_use_documented_fallbacks(self, orchestrator, store, scripted_provider):
        prompt = "Explain recursion"
        scripted_provider.responses.update({
            "classify": "THINKING",
            "optimize": ModelError("boom"),
            "plan": ModelError("boom"),
            "breakdown": ModelError("boom"),
        })

        result = run(orchestrator, store, prompt)

        outputs = {s.stage: s.output for s in result.stages}
        assert outputs["optimize"] == prompt
        assert outputs["plan"] == fallback_plan(prompt)
        assert outputs["breakdown"] == [prompt]
        execute_prompts = [p for _, _, p in scripted_provider.calls_for("execute")]
        assert len(execute_prompts) == 1
        assert f"Current task: {prompt}" in execute_prompts[0]

    def test_chunk_failure_does_not_stop_later_chunks(self, orchestrator, store, scripted_provider):
        def execute(prompt, model):
            if "Current task: second" in prompt:
                raise ModelError("model unavailable")
            return "ok"

        scripted_provider.responses.update({
            "classify": "THINKING",
            "breakdown": "CHUNK: first\nCHUNK: second\nCHUNK: third",
            "execute": execute,
        })

        result = run(orchestrator, store, "Explain recursion")

        assert result.ok
        assert result.final == f"ok\n\n{CHUNK_FALLBACK_TEXT}\n\nok"
        assert result.metadata.iteration_count == 3
        assert result.degraded_stages == ["execute:2"]

    def test_all_models_loading_still_completes(self, orchestrator, store, scripted_provider, manager):
        """
        Test: Backend answers 503 for every model
        How: Every stage raises ModelLoading
        Ensures: Each stage falls back and the pipeline still reaches COMPLETED
        """
        for stage in ("classify", "optimize", "plan", "breakdown", "execute"):
            scripted_provider.responses[stage] = ModelLoading("503 model loading")

        result = run(orchestrator, store, "Explain recursion")

        assert result.ok
        assert result.metadata.processing_stage == ProcessingStage.COMPLETED
        assert result.final == CHUNK_FALLBACK_TEXT
        thinking_models = manager.candidates[TaskCategory.THINKING]
        classify_models = [m for _, m, _ in scripted_provider.calls_for("classify")]
        # every candidate tried, each for the full retry budget
        assert classify_models == [m for m in thinking_models for _ in range(manager.retry_policy.max_attempts)]

    def test_search_augmentation(self, orchestrator, store, scripted_provider, manager):
        scripted_provider.responses.update({
            "classify": "THINKING,WEB_SEARCH",
            "breakdown": "CHUNK: look it up",
            "search": "augmented answer",
        })

        result = run(orchestrator, store, "What is new in Python 3.13?")

        assert result.final == "augmented answer"
        search_model = scripted_provider.calls_for("search")[0][1]
        assert search_model == manager.candidates[TaskCategory.WEB_SEARCH][0]
        assert "refine" not in scripted_provider.stages_called()

    def test_search_failure_keeps_draft(self, orchestrator, store, scripted_provider):
        scripted_provider.responses.update({
            "classify": "WEB_SEARCH",
            "breakdown": "CHUNK: look it up",
            "execute": "draft answer",
            "search": ModelError("search model down"),
        })

        result = run(orchestrator, store, "What is new in Python 3.13?")

        assert result.final == "draft answer"
        assert "search" in result.degraded_stages

    def test_context_failure_yields_empty_context(self, manager, store, scripted_provider):
        history = Mock()
        history.list_messages.side_effect = RuntimeError("database unavailable")
        orchestrator = PromptOrchestrator(manager, history=history, files=store, reporter=store)
        scripted_provider.responses.update({"classify": "THINKING", "breakdown": "CHUNK: one"})

        result = run(orchestrator, store, "Explain recursion")

        assert result.ok
        context_stage = next(s for s in result.stages if s.stage == "inject_context")
        assert not context_stage.ok
        execute_prompt = scripted_provider.calls_for("execute")[0][2]
        assert "Recent Chat:" not in execute_prompt


class TestTopLevelFailure:

    def test_failure_to_store_final_reply_is_reported(self, manager, scripted_provider):
        def add_assistant_message(project_id, message, metadata=None):
            if metadata and metadata.get("processing_stage") == "COMPLETED":
                raise RuntimeError("write failed")

        reporter = Mock()
        reporter.add_assistant_message.side_effect = add_assistant_message
        history = Mock()
        history.list_messages.return_value = []
        history.list_files.return_value = []
        orchestrator = PromptOrchestrator(manager, history=history, files=history, reporter=reporter)
        scripted_provider.responses.update({"classify": "THINKING", "breakdown": "CHUNK: one"})

        result = orchestrator.run(PipelineRequest(project_id="p", prompt="Explain recursion"))

        assert not result.ok
        assert result.final == f"{ERROR_PREFIX}write failed"
        assert result.error == result.final
        assert result.metadata.processing_stage == ProcessingStage.FAILED
        reporter.add_assistant_message.assert_called_with("p", f"{ERROR_PREFIX}write failed")

    def test_progress_report_failure_is_not_fatal(self, manager, store, scripted_provider):
        reporter = Mock()
        reporter.add_assistant_message.side_effect = [RuntimeError("busy"), RuntimeError("busy"), None]
        orchestrator = PromptOrchestrator(manager, history=store, files=store, reporter=reporter)
        scripted_provider.responses.update({"classify": "THINKING", "breakdown": "CHUNK: one"})

        result = orchestrator.run(PipelineRequest(project_id="p", prompt="Explain recursion"))

        assert result.ok
        assert reporter.add_assistant_message.call_count == 3


class TestDeterminism:

    def test_identical_input_gives_identical_output(self, manager, scripted_provider):
        from src.api.dependencies.store import ChatStore

        scripted_provider.responses.update({
            "classify": "CODING, WEB_SEARCH",
            "breakdown": "CHUNK: a\nCHUNK: b",
        })

        results = []
        for _ in range(2):
            fresh = ChatStore()
            orchestrator = PromptOrchestrator(manager, history=fresh, files=fresh, reporter=fresh)
            results.append(run(orchestrator, fresh, CODING_PROMPT))

        first, second = results
        assert first.final == second.final
        assert first.metadata.to_dict() == second.metadata.to_dict()
        assert [s.to_dict() for s in first.stages] == [s.to_dict() for s in second.stages]
