"""
Typer CLI for pmi-prep.

Commands:
    pmiprep quiz                 - Run a practice or timed quiz session
    pmiprep progress             - Show the progress dashboard for an enrollment
    pmiprep history              - Show recent quiz attempts
    pmiprep plans                - List pricing plans in a display currency
    pmiprep enroll               - Enroll in a plan
    pmiprep unenroll             - Request unenrollment
    pmiprep admin requests       - List unenrollment requests
    pmiprep admin approve ID     - Approve a pending request
    pmiprep admin deny ID        - Deny a pending request

Usage:
    pmiprep quiz --user u1 --enrollment e1 --exam PMP --count 10
    pmiprep quiz --user u1 --enrollment e1 --exam PMP --timed --minutes 30
    pmiprep plans --currency USD
    pmiprep admin approve 6512ab --admin root --label admin
"""

from __future__ import annotations

from typing import NoReturn

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from pmiprep.config import configure_logging, get_settings
from pmiprep.core.auth import AdminResolver
from pmiprep.core.errors import PrepError
from pmiprep.core.exams import passing_score_for
from pmiprep.core.models import (
    OPTION_LETTERS,
    ExamType,
    QuizMode,
    QuizSettings,
    RequestStatus,
    UnenrollmentReason,
    User,
)
from pmiprep.core.plans import PLANS, convert_price, format_price, get_plan
from pmiprep.enrollment.lifecycle import EnrollmentLifecycle
from pmiprep.progress.aggregator import ProgressAggregator, ProgressRepository, is_exam_ready
from pmiprep.quiz.service import QuizService, SubmissionOutcome
from pmiprep.quiz.session import QuizSession, SessionResult, SessionState, SessionTimer
from pmiprep.rates import ExchangeRateClient
from pmiprep.store.base import DocumentStore
from pmiprep.store.factory import build_store

app = typer.Typer(help="pmi-prep: PMI exam preparation from the terminal")
admin_app = typer.Typer(help="Admin operations (unenrollment review)")
app.add_typer(admin_app, name="admin")

console = Console()


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """Lazily builds the store and services from settings."""

    def __init__(self) -> None:
        self.settings = get_settings()
        self._store: DocumentStore | None = None

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            self._store = build_store(self.settings)
        return self._store

    @property
    def admin_resolver(self) -> AdminResolver:
        return AdminResolver(self.store, label=self.settings.admin_label)

    @property
    def quiz_service(self) -> QuizService:
        aggregator = ProgressAggregator(
            strong_threshold=self.settings.strong_area_threshold,
            weak_threshold=self.settings.weak_area_threshold,
        )
        return QuizService(self.store, progress=ProgressRepository(self.store, aggregator))

    @property
    def lifecycle(self) -> EnrollmentLifecycle:
        return EnrollmentLifecycle(self.store, self.admin_resolver)


def _fail(exc: PrepError) -> NoReturn:
    rprint(f"[red]{type(exc).__name__}:[/red] {exc}")
    raise typer.Exit(code=1)


# ========================================
# QUIZ COMMANDS
# ========================================


def _show_question(session: QuizSession) -> None:
    question = session.current_question
    header = f"Question {session.current_index + 1}/{len(session.questions)}"
    if session.remaining_seconds is not None:
        minutes, seconds = divmod(int(session.remaining_seconds), 60)
        header += f"  [yellow]{minutes:02d}:{seconds:02d} left[/yellow]"
    rprint(f"\n[bold cyan]{header}[/bold cyan]  [dim]{question.knowledge_area}[/dim]")
    rprint(question.question.text)
    answer = session.answer_for(question.id)
    for letter, option in zip(OPTION_LETTERS, question.shuffled_options):
        marker = "[green]>[/green]" if answer and answer.selected_answer == option else " "
        rprint(f" {marker} {letter}. {option}")


def _show_results(result: SessionResult, outcome: SubmissionOutcome | None, show_explanations: bool) -> None:
    score = result.score
    exam = outcome.attempt.exam_type if outcome else ""
    passed = outcome.attempt.passed if outcome else None

    rprint("\n[bold]Results[/bold]" + ("  [red](time expired)[/red]" if result.expired else ""))
    rprint(f"  Score: [bold]{score.score:.1f}%[/bold]  ({score.correct_answers}/{score.total_questions} correct)")
    if passed is not None:
        verdict = "[green]PASS[/green]" if passed else "[red]BELOW PASSING[/red]"
        rprint(f"  Passing score for {exam}: {passing_score_for(exam):.0f}%  {verdict}")

    table = Table(title="Knowledge Areas", show_header=True)
    table.add_column("Area", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Accuracy", justify="right")
    for area in score.knowledge_area_breakdown:
        style = "green" if area.accuracy >= 70 else "red" if area.accuracy < 60 else "yellow"
        table.add_row(area.area, str(area.correct), str(area.total), f"[{style}]{area.accuracy:.0f}%[/{style}]")
    console.print(table)

    if show_explanations:
        answered = {a.question_id: a for a in result.answers}
        for question in result.questions:
            answer = answered.get(question.id)
            if answer is not None and answer.is_correct:
                continue
            rprint(f"\n[red]x[/red] {question.question.text}")
            rprint(f"  Correct answer: [green]{question.correct_option_text}[/green]")
            if question.question.explanation:
                rprint(f"  [dim]{question.question.explanation}[/dim]")

    if outcome is not None and not outcome.attempt_saved:
        rprint("\n[yellow]Your results could not be saved. They are shown above but not stored.[/yellow]")
    elif outcome is not None and not outcome.progress_saved:
        rprint("\n[yellow]Attempt saved, but your progress summary could not be updated.[/yellow]")


@app.command("quiz")
def quiz(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    enrollment: str = typer.Option(..., "--enrollment", "-e", help="Enrollment ID"),
    exam: ExamType = typer.Option(ExamType.PMP, "--exam", help="Certification exam"),
    count: int | None = typer.Option(None, "--count", "-n", help="Number of questions"),
    mode: QuizMode = typer.Option(QuizMode.PRACTICE, "--mode", help="Session mode"),
    area: list[str] = typer.Option([], "--area", help="Knowledge area filter (repeatable)"),
    timed: bool = typer.Option(False, "--timed", help="Enforce a time limit"),
    minutes: int = typer.Option(30, "--minutes", help="Time limit in minutes (with --timed)"),
) -> None:
    """
    Run a quiz session.

    Answer with A-D. Navigate with n (next) and p (previous), submit with s.
    Timed sessions submit themselves when the time runs out.
    """
    ctx = CLIContext()
    outcomes: list[SubmissionOutcome] = []
    try:
        settings = QuizSettings(
            mode=mode,
            question_count=count or ctx.settings.default_question_count,
            knowledge_areas=list(area),
            timed=timed,
            time_limit_minutes=minutes if timed else None,
        )
        session = ctx.quiz_service.start_quiz(user, enrollment, exam, settings, on_complete=outcomes.append)
    except PrepError as exc:
        _fail(exc)

    timer = SessionTimer(session) if timed else None
    if timer is not None:
        timer.start()
    try:
        while session.state is SessionState.ACTIVE:
            _show_question(session)
            choice = Prompt.ask("[dim]A-D / n / p / s[/dim]", default="n").strip().upper()
            if session.state is not SessionState.ACTIVE:
                rprint("[red]Time is up.[/red]")
                break
            try:
                if choice in OPTION_LETTERS:
                    option = session.current_question.shuffled_options[OPTION_LETTERS.index(choice)]
                    session.select_answer(option)
                    if session.current_index < len(session.questions) - 1:
                        session.next_question()
                elif choice == "N":
                    session.next_question()
                elif choice == "P":
                    session.previous_question()
                elif choice == "S":
                    unanswered = len(session.questions) - session.answered_count
                    if unanswered and Prompt.ask(
                        f"{unanswered} unanswered. Submit anyway?", choices=["y", "n"], default="n"
                    ) != "y":
                        continue
                    session.submit()
            except PrepError as exc:
                if session.state is not SessionState.ACTIVE:
                    rprint("[red]Time is up.[/red]")
                    break
                rprint(f"[red]{exc}[/red]")
                continue
    finally:
        if timer is not None:
            timer.stop()
            timer.join()

    result = session.submit()
    _show_results(result, outcomes[0] if outcomes else None, settings.show_explanations)


@app.command("history")
def history(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    limit: int = typer.Option(10, "--limit", help="Number of attempts"),
) -> None:
    """Show recent quiz attempts, newest first."""
    attempts = CLIContext().quiz_service.quiz_history(user, limit=limit)
    if not attempts:
        rprint("[dim]No quiz attempts yet.[/dim]")
        return
    table = Table(title="Quiz History", show_header=True)
    table.add_column("Completed", style="dim")
    table.add_column("Exam", style="cyan")
    table.add_column("Mode")
    table.add_column("Score", justify="right")
    table.add_column("Correct", justify="right")
    for attempt in attempts:
        table.add_row(
            attempt.completed_at.strftime("%Y-%m-%d %H:%M"),
            attempt.exam_type,
            attempt.mode.value,
            f"{attempt.score:.1f}%",
            f"{attempt.correct_answers}/{attempt.total_questions}",
        )
    console.print(table)


@app.command("progress")
def progress(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    enrollment: str = typer.Option(..., "--enrollment", "-e", help="Enrollment ID"),
) -> None:
    """Show the progress dashboard for an enrollment."""
    view = CLIContext().quiz_service.progress_view(user, enrollment)
    if view is None:
        rprint("[dim]No progress yet. Take a quiz to get started.[/dim]")
        return

    ready = is_exam_ready(view)
    rprint(f"\n[bold cyan]Progress[/bold cyan] ({view.exam_type or 'all exams'})")
    rprint(f"  Questions attempted: {view.total_questions_attempted}")
    rprint(f"  Overall accuracy: [bold]{view.overall_accuracy:.1f}%[/bold]")
    rprint(f"  Exam ready: {'[green]yes[/green]' if ready else '[yellow]not yet[/yellow]'}")

    table = Table(show_header=True)
    table.add_column("Knowledge Area", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Accuracy", justify="right")
    for score in sorted(view.knowledge_area_scores, key=lambda s: s.area):
        table.add_row(score.area, str(score.correct), str(score.total), f"{score.accuracy:.0f}%")
    console.print(table)
    if view.strong_areas:
        rprint(f"  [green]Strong:[/green] {', '.join(view.strong_areas)}")
    if view.weak_areas:
        rprint(f"  [red]Needs work:[/red] {', '.join(view.weak_areas)}")


# ========================================
# PLANS & ENROLLMENT
# ========================================


@app.command("plans")
def plans(
    currency: str = typer.Option("GHS", "--currency", "-c", help="Display currency"),
) -> None:
    """List pricing plans converted to a display currency."""
    settings = get_settings()
    with ExchangeRateClient(settings) as client:
        rates = client.fetch_rates()

    table = Table(title=f"Plans ({currency.upper()})", show_header=True)
    table.add_column("Plan", style="cyan")
    table.add_column("Price", justify="right")
    table.add_column("Certifications")
    table.add_column("Refund window", justify="right")
    table.add_column("Cooldown", justify="right")
    try:
        for plan in PLANS:
            price = convert_price(plan.base_price, currency, rates)
            name = f"{plan.name} [yellow]*[/yellow]" if plan.popular else plan.name
            table.add_row(
                name,
                format_price(price, currency),
                ", ".join(plan.certifications),
                f"{plan.refund_eligibility_days} days",
                f"{plan.cooldown_days} days",
            )
    except PrepError as exc:
        _fail(exc)
    console.print(table)


@app.command("enroll")
def enroll(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    plan: str = typer.Option(..., "--plan", help="Plan name, e.g. 'Starter Plan'"),
    currency: str = typer.Option("GHS", "--currency", "-c", help="Payment currency"),
    course: str | None = typer.Option(None, "--course", help="Course ID"),
) -> None:
    """Enroll in a plan (created as pending)."""
    try:
        enrollment = CLIContext().lifecycle.create_enrollment(
            User(id=user), get_plan(plan), currency, course_id=course
        )
    except PrepError as exc:
        _fail(exc)
    rprint(f"[green]Enrolled[/green] in {enrollment.plan_name} (id: {enrollment.id}, status: {enrollment.status.value})")


@app.command("unenroll")
def unenroll(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    enrollment: str = typer.Option(..., "--enrollment", "-e", help="Enrollment ID"),
    reason: UnenrollmentReason = typer.Option(..., "--reason", help="Reason category"),
    details: str | None = typer.Option(None, "--details", help="Details (required for 'Other')"),
) -> None:
    """Request unenrollment from an enrollment."""
    try:
        request = CLIContext().lifecycle.request_unenrollment(User(id=user), enrollment, reason, details)
    except PrepError as exc:
        _fail(exc)
    rprint(f"[green]Request submitted[/green] (id: {request.id}). An admin will review it.")


# ========================================
# ADMIN COMMANDS
# ========================================


@admin_app.command("requests")
def admin_requests(
    status: RequestStatus | None = typer.Option(None, "--status", help="Filter by status"),
) -> None:
    """List unenrollment requests, newest first."""
    try:
        requests_ = CLIContext().lifecycle.list_requests(status)
    except PrepError as exc:
        _fail(exc)

    table = Table(title="Unenrollment Requests", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("User")
    table.add_column("Certification", style="cyan")
    table.add_column("Plan")
    table.add_column("Reason")
    table.add_column("Requested")
    table.add_column("Status")
    for request in requests_:
        table.add_row(
            request.id or "",
            request.user_id,
            request.certification_name,
            request.plan_tier,
            request.reason_category.value,
            request.requested_at.strftime("%Y-%m-%d"),
            request.status.value,
        )
    console.print(table)


@admin_app.command("approve")
def admin_approve(
    request_id: str = typer.Argument(..., help="Unenrollment request ID"),
    admin: str = typer.Option(..., "--admin", help="Admin user ID"),
    label: list[str] = typer.Option([], "--label", help="Account labels of the admin"),
) -> None:
    """Approve a pending request: deactivate the enrollment and compute the refund."""
    try:
        request = CLIContext().lifecycle.approve_unenrollment(User(id=admin, labels=tuple(label)), request_id)
    except PrepError as exc:
        _fail(exc)
    refund = format_price(request.refund_amount or 0.0, "GHS")
    rprint(f"[green]Approved[/green] {request_id}")
    rprint(f"  Refund: {refund} ({'eligible' if request.refund_eligible else 'not eligible'})")
    rprint(f"  Cooldown: {request.cooldown_days} days")


@admin_app.command("deny")
def admin_deny(
    request_id: str = typer.Argument(..., help="Unenrollment request ID"),
    admin: str = typer.Option(..., "--admin", help="Admin user ID"),
    label: list[str] = typer.Option([], "--label", help="Account labels of the admin"),
) -> None:
    """Deny a pending request. The enrollment is left unchanged."""
    try:
        CLIContext().lifecycle.deny_unenrollment(User(id=admin, labels=tuple(label)), request_id)
    except PrepError as exc:
        _fail(exc)
    rprint(f"[yellow]Denied[/yellow] {request_id}")


def main() -> None:
    """Entry point for the CLI."""
    configure_logging()
    logger.debug("pmiprep CLI starting")
    app()


if __name__ == "__main__":
    main()
