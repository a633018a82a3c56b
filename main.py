import asyncio
import time

import pandas as pd
import streamlit as st

from config import CONFIG
from exambuilder.errors import (
    AnswerLockedError,
    EvaluationError,
    ExamBuilderError,
    ExamLoadError,
    InvalidStateError,
    SubmissionError,
)
from exambuilder.evaluator.open_ended import HttpOpenEndedGrader
from exambuilder.evaluator.results import build_review_rows, summarize_attempt
from exambuilder.evaluator.semantic import SemanticOpenEndedGrader
from exambuilder.generation.question_generator import (
    HttpQuestionGenerator,
    LocalLlamaQuestionGenerator,
    QuestionGenerationRequest,
    generate_questions,
)
from exambuilder.models.exam import FillInBlankAnswer, MultipleChoiceAnswer, OpenEndedAnswer, Question, QuestionType
from exambuilder.services.api import RestExamBackend
from exambuilder.services.demo import demo_backend
from exambuilder.session.orchestrator import AttemptOrchestrator, Notification, QuestionState, SessionPhase
from exambuilder.session.persistence import JsonFileStorage
from exambuilder.utils.helpers import configure_logging, format_clock, format_duration, percentage
from exambuilder.utils.pdf_generator import create_attempt_report_pdf
from exambuilder.utils.pdf_parser import parse_pdf_bytes, text_preview

configure_logging(CONFIG.log_level)

TYPE_LABELS = {
    QuestionType.MULTIPLE_CHOICE: "Multiple choice",
    QuestionType.FILL_IN_BLANK: "Fill in the blank",
    QuestionType.OPEN_ENDED: "Open-ended",
}
STATE_BADGES = {
    QuestionState.UNANSWERED: "⬜",
    QuestionState.ANSWERED: "✏️",
    QuestionState.EVALUATING: "⏳",
    QuestionState.EVALUATED: "✅",
}
TOAST_ICONS = {"success": "✅", "error": "❌", "info": "ℹ️"}


@st.cache_resource
def get_backend():
    if CONFIG.backend_url:
        return RestExamBackend(CONFIG.backend_url, CONFIG.backend_key, timeout=CONFIG.request_timeout)
    return demo_backend()


@st.cache_resource
def get_grader():
    if CONFIG.grading_url:
        return HttpOpenEndedGrader(CONFIG.grading_url, api_key=CONFIG.backend_key, timeout=CONFIG.request_timeout)
    return SemanticOpenEndedGrader()


@st.cache_resource
def get_generator():
    if CONFIG.generation_url:
        return HttpQuestionGenerator(CONFIG.generation_url, api_key=CONFIG.backend_key, timeout=CONFIG.request_timeout)
    return LocalLlamaQuestionGenerator(text_budget=CONFIG.pdf_text_budget)


def toast(notification: Notification) -> None:
    st.toast(notification.message, icon=TOAST_ICONS.get(notification.level))


def close_session() -> None:
    orchestrator = st.session_state.get("orchestrator")
    if orchestrator is not None:
        orchestrator.dispose()
    st.session_state.orchestrator = None
    st.session_state.confirm_submit = False


def open_session(exam_id: str) -> AttemptOrchestrator | None:
    close_session()
    orchestrator = AttemptOrchestrator(
        exam_id,
        backend=get_backend(),
        grader=get_grader(),
        storage=JsonFileStorage(CONFIG.storage_path),
        timer_interval=CONFIG.timer_tick_seconds,
        autosave_interval=CONFIG.autosave_interval_seconds,
        on_notify=toast,
    )
    try:
        asyncio.run(orchestrator.load())
    except ExamLoadError as exc:
        st.error(f"Failed to load exam: {exc}")
        return None

    now = time.monotonic()
    st.session_state.orchestrator = orchestrator
    st.session_state.last_tick = now
    st.session_state.last_autosave = now
    return orchestrator


# --- Attempt page ----------------------------------------------------------------


def render_answer_input(orchestrator: AttemptOrchestrator, question: Question) -> None:
    state = orchestrator.question_state(question.id)
    locked = state in (QuestionState.EVALUATING, QuestionState.EVALUATED)
    stored = orchestrator.get_answer(question.id)
    key = f"answer_{id(orchestrator)}_{question.id}"

    if question.type is QuestionType.MULTIPLE_CHOICE:
        current = stored.index if isinstance(stored, MultipleChoiceAnswer) else None
        raw = st.radio(
            "Choose one option:",
            options=list(range(len(question.options))),
            format_func=lambda i: question.options[i],
            index=current,
            disabled=locked,
            key=key,
        )
        changed = raw is not None and raw != current
    elif question.type is QuestionType.FILL_IN_BLANK:
        blanks = max(1, question.blank_count)
        if blanks == 1:
            current = stored.value if isinstance(stored, FillInBlankAnswer) and isinstance(stored.value, str) else ""
            raw = st.text_input("Your answer:", value=current, disabled=locked, key=key)
        else:
            values = list(stored.value) if isinstance(stored, FillInBlankAnswer) and not isinstance(stored.value, str) else []
            values += [""] * (blanks - len(values))
            cols = st.columns(blanks)
            parts = []
            for idx, col in enumerate(cols):
                with col:
                    parts.append(st.text_input(f"Blank {idx + 1}", value=values[idx], disabled=locked, key=f"{key}_{idx}"))
            current = tuple(values[:blanks])
            raw = tuple(parts)
        changed = raw != current
    else:
        current = stored.text if isinstance(stored, OpenEndedAnswer) else ""
        raw = st.text_area("Your answer:", value=current, height=180, disabled=locked, key=key)
        changed = raw != current

    if changed and not locked:
        try:
            orchestrator.update_answer(question.id, raw)
        except (AnswerLockedError, InvalidStateError) as exc:
            st.warning(str(exc))


def render_evaluation(orchestrator: AttemptOrchestrator, question: Question) -> None:
    state = orchestrator.question_state(question.id)

    if state is QuestionState.EVALUATED:
        result = orchestrator.evaluations[question.id]
        message = f"**{result.status.value}** ({result.marks_awarded:g}/{question.marks} marks)"
        if result.is_correct:
            st.success(message)
        elif result.status.value == "Partially Correct":
            st.warning(message)
        else:
            st.error(message)
        st.write(result.feedback)
        return

    if st.button(
        "🧪 Evaluate answer",
        key=f"evaluate_{question.id}",
        disabled=state is not QuestionState.ANSWERED,
    ):
        with st.spinner("Evaluating..."):
            try:
                asyncio.run(orchestrator.evaluate_question(question.id))
            except EvaluationError:
                pass  # toast already shown
            except (ValueError, InvalidStateError) as exc:
                st.warning(str(exc))
        st.rerun()


def submit_exam(orchestrator: AttemptOrchestrator) -> None:
    st.session_state.confirm_submit = False
    with st.spinner("Submitting your exam..."):
        try:
            asyncio.run(orchestrator.submit())
        except SubmissionError as exc:
            st.error(f"Failed to submit exam: {exc}")
            return
        except InvalidStateError as exc:
            st.warning(str(exc))
            return
    st.rerun()


@st.dialog("Unevaluated answers")
def confirm_submit_dialog(orchestrator: AttemptOrchestrator) -> None:
    check = orchestrator.submit_check()
    st.write(
        f"{len(check.pending_question_ids)} answered question(s) have not been evaluated yet. "
        "Evaluate them now, or submit and let them be graded with the exam."
    )
    col_eval, col_submit = st.columns(2)
    with col_eval:
        if st.button("Evaluate now", use_container_width=True):
            st.session_state.confirm_submit = False
            if check.first_pending_index is not None:
                orchestrator.go_to(check.first_pending_index)
            st.rerun()
    with col_submit:
        if st.button("Skip & Submit", type="primary", use_container_width=True):
            submit_exam(orchestrator)


def _due_ticks(key: str, interval: float) -> int:
    now = time.monotonic()
    last = st.session_state.get(key, now)
    due = int((now - last) // interval)
    if due:
        st.session_state[key] = last + due * interval
    return due


@st.fragment(run_every=CONFIG.timer_tick_seconds)
def render_timer(orchestrator: AttemptOrchestrator) -> None:
    if orchestrator.time_remaining is None:
        return
    for _ in range(_due_ticks("last_tick", CONFIG.timer_tick_seconds)):
        if orchestrator.phase is not SessionPhase.IN_PROGRESS:
            break
        asyncio.run(orchestrator.on_timer_tick())

    if orchestrator.phase is SessionPhase.SUBMITTED:
        st.rerun(scope="app")
    st.metric("⏱️ Time remaining", format_clock(orchestrator.time_remaining))


@st.fragment(run_every=CONFIG.autosave_interval_seconds)
def run_autosave(orchestrator: AttemptOrchestrator) -> None:
    if _due_ticks("last_autosave", CONFIG.autosave_interval_seconds):
        asyncio.run(orchestrator.autosave())


def render_attempt(orchestrator: AttemptOrchestrator) -> None:
    exam = orchestrator.exam
    questions = orchestrator.questions

    col_title, col_timer = st.columns([3, 1])
    with col_title:
        st.subheader(exam.name)
        st.caption(" • ".join(p for p in (exam.subject, exam.course, exam.topic, exam.difficulty) if p))
    with col_timer:
        render_timer(orchestrator)
    run_autosave(orchestrator)

    if orchestrator.phase is SessionPhase.SUBMITTED:
        st.rerun()

    answered = orchestrator.answered_count
    st.progress(answered / len(questions), text=f"{answered}/{len(questions)} answered")

    nav_cols = st.columns(min(len(questions), 10))
    for idx, question in enumerate(questions):
        badge = STATE_BADGES[orchestrator.question_state(question.id)]
        with nav_cols[idx % len(nav_cols)]:
            if st.button(f"{badge} {idx + 1}", key=f"nav_{idx}", use_container_width=True):
                orchestrator.go_to(idx)
                st.rerun()

    question = orchestrator.current_question
    st.markdown("---")
    st.markdown(f"### Question {orchestrator.current_index + 1}/{len(questions)}")
    st.caption(f"{TYPE_LABELS[question.type]} • {question.marks} mark(s)")
    if question.instruction_text:
        st.info(question.instruction_text)
    st.write(question.question_text)
    if question.image_url:
        st.image(question.image_url)

    render_answer_input(orchestrator, question)
    render_evaluation(orchestrator, question)

    st.markdown("---")
    col_prev, col_next, col_save, col_submit = st.columns(4)
    with col_prev:
        if st.button("⬅️ Previous", disabled=orchestrator.current_index == 0, use_container_width=True):
            orchestrator.previous_question()
            st.rerun()
    with col_next:
        if st.button(
            "Next ➡️",
            disabled=orchestrator.current_index >= len(questions) - 1,
            use_container_width=True,
        ):
            orchestrator.next_question()
            st.rerun()
    with col_save:
        if st.button("💾 Save for later", use_container_width=True):
            asyncio.run(orchestrator.save_for_later())
    with col_submit:
        if st.button("📤 Submit exam", type="primary", use_container_width=True):
            if orchestrator.submit_check().has_pending:
                st.session_state.confirm_submit = True
            else:
                submit_exam(orchestrator)

    if st.session_state.get("confirm_submit"):
        confirm_submit_dialog(orchestrator)


# --- Results page ----------------------------------------------------------------


def render_results(orchestrator: AttemptOrchestrator) -> None:
    record = orchestrator.record
    exam = orchestrator.exam
    summary = summarize_attempt(record)
    rows = build_review_rows(orchestrator.questions, record)

    st.subheader(f"✅ Results: {exam.name}")
    col_score, col_grade, col_time, col_counts = st.columns(4)
    col_score.metric("Score", f"{summary.total_marks:g}/{summary.max_marks}", f"{summary.percentage}%")
    col_grade.metric("Grade", summary.grade)
    col_time.metric("Time taken", summary.time_taken)
    col_counts.metric(
        "AI-graded",
        f"{summary.correct_count} / {summary.partially_correct_count} / {summary.incorrect_count}",
        help="Correct / Partially correct / Incorrect",
    )

    st.dataframe(pd.DataFrame([row.to_dict() for row in rows]), use_container_width=True, hide_index=True)

    for row in rows:
        with st.expander(f"Question {row.number}: {row.question_text[:80]}"):
            st.markdown("**Your answer:**")
            st.write(row.student_answer)
            st.markdown("**Correct answer:**")
            st.write(row.correct_answer or "-")
            if row.feedback:
                st.markdown("**Feedback:**")
                st.write(row.feedback)

    col_pdf, col_retake = st.columns(2)
    with col_pdf:
        try:
            pdf_bytes = create_attempt_report_pdf(exam, record, rows)
        except Exception as exc:
            pdf_bytes = None
            st.warning(f"Could not build the PDF report: {exc}")
        if pdf_bytes:
            st.download_button(
                "⬇️ Download report (PDF)",
                data=pdf_bytes,
                file_name=f"results_{record.id}.pdf",
                mime="application/pdf",
                use_container_width=True,
            )
    with col_retake:
        if st.button("🔁 Take again", use_container_width=True):
            open_session(exam.id)
            st.rerun()

    render_previous_attempts(exam.id, current_id=record.id)


def render_previous_attempts(exam_id: str, *, current_id: str | None = None) -> None:
    try:
        attempts = get_backend().get_attempts_by_exam(exam_id)
    except ExamBuilderError as exc:
        st.warning(f"Could not load previous attempts: {exc}")
        return

    attempts = [a for a in attempts if a.id != current_id]
    if not attempts:
        return

    st.markdown("#### Previous attempts")
    st.dataframe(
        pd.DataFrame(
            [
                {
                    "Submitted": a.submitted_at,
                    "Score": f"{a.total_marks:g}/{a.max_marks}",
                    "%": percentage(a.total_marks, a.max_marks),
                    "Time": format_duration(a.time_taken),
                }
                for a in attempts
            ]
        ),
        use_container_width=True,
        hide_index=True,
    )


# --- Question generation -----------------------------------------------------------


def render_generation(exam_id: str) -> None:
    backend = get_backend()
    exam = backend.get_exam(exam_id)
    existing = backend.get_questions_by_exam(exam_id)

    st.subheader(f"🪄 Generate questions for {exam.name}")
    st.caption(f"The exam currently has {len(existing)} question(s).")

    with st.form("generate_form"):
        col_a, col_b = st.columns(2)
        with col_a:
            subject = st.text_input("Subject", value=exam.subject)
            course = st.text_input("Course (qualification | board)", value=exam.course)
            topic = st.text_input("Topic", value=exam.topic)
            sub_topic = st.text_input("Sub-topic", value=exam.sub_topic)
        with col_b:
            difficulty = st.selectbox("Difficulty", ("Easy", "Medium", "Hard"), index=1)
            mcq_count = st.number_input("Multiple choice", min_value=0, max_value=20, value=2)
            fib_count = st.number_input("Fill in the blank", min_value=0, max_value=20, value=1)
            open_count = st.number_input("Open-ended", min_value=0, max_value=20, value=1)
        pdf_file = st.file_uploader("Study material (PDF, optional)", type=["pdf"])
        submitted = st.form_submit_button("Generate")

    if submitted:
        pdf_text = ""
        if pdf_file is not None:
            try:
                parsed = parse_pdf_bytes(pdf_file.getvalue(), budget=CONFIG.pdf_text_budget)
                pdf_text = parsed.text
                st.caption(f"Extracted {len(pdf_text)} characters from {parsed.page_count} page(s).")
                with st.expander("Extracted text preview"):
                    st.write(text_preview(pdf_text))
            except (ValueError, RuntimeError) as exc:
                st.warning(f"Could not read the PDF: {exc}")

        try:
            request = QuestionGenerationRequest(
                subject=subject,
                course=course,
                topic=topic,
                sub_topic=sub_topic,
                difficulty=difficulty,
                mcq_count=int(mcq_count),
                fib_count=int(fib_count),
                open_count=int(open_count),
                pdf_text=pdf_text,
            )
            with st.spinner("Generating questions..."):
                st.session_state.generated = generate_questions(
                    get_generator(), request, exam_id, start_index=len(existing)
                )
        except (ValueError, RuntimeError, FileNotFoundError) as exc:
            st.session_state.generated = None
            st.error(f"Question generation failed: {exc}")

    generated = st.session_state.get("generated")
    if generated:
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "#": q.order_index + 1,
                        "Type": TYPE_LABELS[q.type],
                        "Question": q.question_text,
                        "Marks": q.marks,
                        "Answer": q.options[q.correct_answer] if q.type is QuestionType.MULTIPLE_CHOICE else q.reference_answer,
                    }
                    for q in generated
                ]
            ),
            use_container_width=True,
            hide_index=True,
        )
        if st.button("💾 Save questions to exam", type="primary"):
            try:
                backend.save_questions(generated)
            except (ExamBuilderError, ValueError) as exc:
                st.error(f"Could not save questions: {exc}")
            else:
                st.session_state.generated = None
                st.toast(f"Saved {len(generated)} question(s).", icon="✅")
                st.rerun()


# --- Page --------------------------------------------------------------------------

st.set_page_config(page_title="Exam Builder", page_icon="📝", layout="wide")

st.title("📝 Exam Builder")
st.markdown("Take exams with instant feedback and AI-graded open answers.")
st.markdown("---")

if "orchestrator" not in st.session_state:
    st.session_state.orchestrator = None
    st.session_state.confirm_submit = False
    st.session_state.generated = None

try:
    exams = get_backend().list_exams(published_only=False)
except ExamBuilderError as exc:
    st.error(f"Could not reach the exam backend: {exc}")
    st.stop()

if not exams:
    st.info("No exams yet.")
    st.stop()

with st.sidebar:
    st.header("⚙️ Exam")
    exam_names = {e.id: e.name for e in exams}
    exam_id = st.selectbox("Choose an exam:", list(exam_names), format_func=exam_names.get, key="exam_select")
    mode = st.radio("Mode:", ("Take exam", "Generate questions"), key="mode_select")
    if not CONFIG.backend_url:
        st.caption("Demo mode: data is kept in memory.")

orchestrator: AttemptOrchestrator | None = st.session_state.orchestrator
if orchestrator is not None and orchestrator.exam_id != exam_id:
    close_session()
    orchestrator = None

if mode == "Generate questions":
    render_generation(exam_id)
    st.stop()

if orchestrator is None:
    selected = next(e for e in exams if e.id == exam_id)
    st.subheader(selected.name)
    st.caption(" • ".join(p for p in (selected.subject, selected.course, selected.topic) if p))
    if selected.settings.timer_seconds:
        st.write(f"⏱️ Time limit: {format_duration(selected.settings.timer_seconds)}")
    if selected.settings.reattempts_allowed is not None:
        st.write(f"🔁 Reattempts allowed: {selected.settings.reattempts_allowed}")
    if st.button("▶️ Start / resume exam", type="primary"):
        if open_session(exam_id) is not None:
            st.rerun()
    render_previous_attempts(exam_id)
    st.stop()

if orchestrator.phase is SessionPhase.SUBMITTED:
    render_results(orchestrator)
elif orchestrator.phase in (SessionPhase.IN_PROGRESS, SessionPhase.SUBMITTING):
    render_attempt(orchestrator)
else:
    st.error("This exam could not be loaded.")
