"""Markdown rendering for summaries, checklists, reminders and flow guidance."""

from collections import defaultdict
from typing import TYPE_CHECKING

from taxpilot.models.appointment import Reminder
from taxpilot.models.client import ClientProfile
from taxpilot.models.documents import DocumentCategory, DocumentChecklist
from taxpilot.models.flow import (
    FLOW_SEQUENCE,
    ConversationFlowState,
    ConversationStage,
    FlowActionResult,
    FlowProgress,
)
from taxpilot.models.taxpro import TaxProfessional
from taxpilot.utils import get_enum_value, humanize

if TYPE_CHECKING:
    from taxpilot.routing import ComplexityAssessment, RoutingMatch


def _title(value) -> str:
    return humanize(value).title()


def _list_or_none(values) -> str:
    return ", ".join(humanize(v) for v in values) if values else "None"


def format_client_summary(client: ClientProfile) -> str:
    """
    Render the intake summary a client reviews before confirming.

    Args:
        client: Client whose answers to summarize

    Returns:
        Markdown summary
    """
    lines: list[str] = []
    lines.append("# Intake Summary")
    lines.append("")

    lines.append("## Personal Information")
    lines.append("")
    lines.append(f"- **Name:** {client.name or 'Not provided'}")
    if client.email:
        lines.append(f"- **Email:** {client.email}")
    if client.phone:
        lines.append(f"- **Phone:** {client.phone}")
    filing = _title(client.filing_status) if client.filing_status else "Not provided"
    lines.append(f"- **Filing Status:** {filing}")
    lines.append(f"- **Dependents:** {client.dependents}")
    lines.append("")

    lines.append("## Employment & Income")
    lines.append("")
    employment = _title(client.employment_type) if client.employment_type else "Not provided"
    lines.append(f"- **Employment:** {employment}")
    if client.employers:
        lines.append(f"- **Employers / Platforms:** {', '.join(client.employers)}")
    lines.append(f"- **Income Types:** {_list_or_none(client.income_types)}")
    lines.append("")

    lines.append("## Deductions")
    lines.append("")
    lines.append(f"- {_list_or_none(client.deductions)}")
    lines.append("")

    lines.append("## Special Situations")
    lines.append("")
    lines.append(f"- {_list_or_none(client.special_situations)}")
    lines.append("")

    status = "Complete" if client.intake_completed else "In progress"
    lines.append(f"**Intake Status:** {status}")

    return "\n".join(lines)


def format_checklist(checklist: DocumentChecklist) -> str:
    """Render a checklist grouped by category, required items first."""
    lines: list[str] = []
    lines.append("# Your Document Checklist")
    lines.append("")

    if not checklist.documents:
        lines.append("No documents needed.")
        return "\n".join(lines)

    grouped: dict[str, list] = defaultdict(list)
    for doc in checklist.documents:
        grouped[get_enum_value(doc.category)].append(doc)

    for category in DocumentCategory:
        docs = grouped.get(category.value)
        if not docs:
            continue
        lines.append(f"## {_title(category)}")
        lines.append("")
        for doc in sorted(docs, key=lambda d: not d.required):
            mark = "[x]" if doc.collected else "[ ]"
            optional = "" if doc.required else " *(optional)*"
            lines.append(f"- {mark} **{doc.name}**{optional}: {doc.description}")
            if doc.tip:
                lines.append(f"  - Tip: {doc.tip}")
        lines.append("")

    pending = len(checklist.pending)
    lines.append(f"**{len(checklist.collected)} collected, {pending} required still pending**")
    return "\n".join(lines)


def format_reminders(reminders: list[Reminder]) -> str:
    """Render reminders in the order they go out."""
    if not reminders:
        return "No reminders scheduled."

    lines = ["# Scheduled Reminders", ""]
    for reminder in sorted(reminders, key=lambda r: r.scheduled_for):
        status = "sent" if reminder.sent else "pending"
        when = reminder.scheduled_for.strftime("%b %d, %Y at %I:%M %p")
        lines.append(f"- **{when}** ({_title(reminder.reminder_type)}, {status}): {reminder.message}")
    return "\n".join(lines)


def format_taxpro_recommendations(
    assessment: "ComplexityAssessment | None", match: "RoutingMatch"
) -> str:
    """Render the best professional for a client, with alternates."""
    lines: list[str] = ["# Tax Professional Recommendations", ""]

    if assessment is not None:
        lines.append(
            f"**Complexity:** {_title(assessment.level)} (score {assessment.score}/100)"
        )
        lines.append(f"**Specializations needed:** {_list_or_none(assessment.required_specializations)}")
        lines.append("")
        lines.append(assessment.interpretation)
        lines.append("")

    if match.tax_pro is None:
        lines.append(f"**No match:** {match.reason}")
        return "\n".join(lines)

    lines.append("## Recommended")
    lines.append("")
    lines.extend(_taxpro_lines(match.tax_pro))
    lines.append(f"- {match.reason}")
    lines.append("")

    if match.alternates:
        lines.append("## Alternates")
        lines.append("")
        for taxpro in match.alternates:
            lines.extend(_taxpro_lines(taxpro))
        lines.append("")

    return "\n".join(lines).rstrip()


def _taxpro_lines(taxpro: TaxProfessional) -> list[str]:
    return [
        f"- **{taxpro.name}** ({taxpro.id}), rated {taxpro.rating:.1f}",
        f"  - Specializations: {_list_or_none(taxpro.specializations)}",
        f"  - Handles up to {humanize(taxpro.max_complexity)} returns, "
        f"{taxpro.remaining_slots} slots left today",
    ]


def taxpro_rows(taxpros: list[TaxProfessional]) -> list[tuple[str, ...]]:
    """Table rows for the roster listing: id, name, specializations, max, load, rating."""
    return [
        (
            tp.id,
            tp.name,
            ", ".join(humanize(s) for s in tp.specializations),
            _title(tp.max_complexity),
            f"{tp.current_load}/{tp.max_daily_appointments}",
            f"{tp.rating:.1f}",
        )
        for tp in taxpros
    ]


def format_flow_progress(
    state: ConversationFlowState,
    descriptions: dict[ConversationStage, str],
    progress: FlowProgress,
) -> str:
    """Checklist of every stage, marking done, current and upcoming ones."""
    lines = [f"## Conversation Progress: {progress.percentage}%", ""]
    for number, stage in enumerate(FLOW_SEQUENCE, start=1):
        if stage in state.completed_stages:
            marker = "✅"
        elif stage == state.current_stage:
            marker = "🔵"
        else:
            marker = "⬜"
        lines.append(f"{marker} **{number}. {humanize(stage).upper()}**: {descriptions.get(stage, '')}")
    return "\n".join(lines)


def format_next_action(status: FlowActionResult) -> str:
    """Guidance block telling the assistant what to do next."""
    lines = [
        "## Current Flow Stage",
        "",
        f"**Stage:** {humanize(status.current_stage).upper()}",
        f"**Progress:** {status.progress.percentage}% "
        f"(Step {status.progress.current} of {status.progress.total})",
        "",
        "### What to do next:",
        status.next_action,
        "",
        "### Detailed Instructions:",
        status.instructions,
    ]
    if status.suggested_tools:
        lines.extend(["", "### Suggested Tools:"])
        lines.extend(f"- {tool}" for tool in status.suggested_tools)
    if status.blockers:
        lines.extend(["", "### Blockers (resolve before proceeding):"])
        lines.extend(f"- {blocker}" for blocker in status.blockers)
    return "\n".join(lines)
