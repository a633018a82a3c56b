from __future__ import annotations

from typing import Any, Iterable

from fpdf import FPDF

from exambuilder.evaluator.results import ReviewRow, summarize_attempt
from exambuilder.models.attempt import AttemptRecord
from exambuilder.models.exam import Exam


def clean_text(text: Any) -> str:
    """Make text safe for the built-in (latin-1) PDF fonts."""

    if not isinstance(text, str):
        text = str(text)

    replacements = {
        "–": "-",
        "—": "-",
        "‘": "'",
        "’": "'",
        "“": '"',
        "”": '"',
        "…": "...",
    }
    for char, replacement in replacements.items():
        text = text.replace(char, replacement)

    return text.encode("latin-1", "replace").decode("latin-1")


class ReportPDF(FPDF):
    def __init__(self, header_title: str | None = None, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._header_title = header_title or "Exam Builder - Attempt Report"

    def header(self):
        self.set_font("Helvetica", "B", 15)
        self.cell(0, 10, clean_text(self._header_title), border=False, align="C")
        self.ln(20)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.cell(0, 10, f"Page {self.page_no()}", align="C")


def _labelled(pdf: FPDF, label: str, value: str, *, mono: bool = False) -> None:
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(0, 7, clean_text(label), new_x="LMARGIN", new_y="NEXT")
    if mono:
        pdf.set_font("Courier", size=9)
    else:
        pdf.set_font("Helvetica", size=10)
    pdf.multi_cell(0, 5, clean_text(value or "-"), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(2)


def create_attempt_report_pdf(exam: Exam, record: AttemptRecord, rows: Iterable[ReviewRow]) -> bytes:
    """Summary page plus one section per question (answer, result, feedback, key)."""

    rows = list(rows)
    summary = summarize_attempt(record)

    pdf = ReportPDF(header_title=f"{exam.name} - Results")
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, clean_text("Summary"), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", size=11)
    for line in (
        f"Subject: {exam.subject}",
        f"Score: {summary.total_marks:g}/{summary.max_marks} ({summary.percentage}%)",
        f"Grade: {summary.grade}",
        f"Time taken: {summary.time_taken}",
        f"Submitted: {record.submitted_at}",
    ):
        pdf.cell(0, 7, clean_text(line), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    for row in rows:
        if pdf.get_y() > pdf.h - 80:
            pdf.add_page()

        pdf.set_font("Helvetica", "B", 12)
        pdf.cell(
            0,
            8,
            clean_text(f"Question {row.number}/{len(rows)} ({row.marks} marks)"),
            new_x="LMARGIN",
            new_y="NEXT",
        )
        pdf.set_font("Helvetica", size=10)
        pdf.multi_cell(0, 5, clean_text(row.question_text), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(2)

        status = row.status.value if row.status else "Not answered"
        _labelled(pdf, "Your answer:", row.student_answer, mono=True)
        _labelled(pdf, "Result:", f"{status} - {row.marks_awarded:g}/{row.marks}")
        if row.feedback:
            _labelled(pdf, "Feedback:", row.feedback)
        _labelled(pdf, "Correct answer:", row.correct_answer, mono=True)
        pdf.ln(3)

    return bytes(pdf.output())
