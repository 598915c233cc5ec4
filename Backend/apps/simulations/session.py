"""
Exam session state machine.

Plain Python, no Django imports: the same reducer drives the web client's
session model and the server-side replay used in tests. ``apply_action``
never mutates its input and never raises; invalid actions return the state
unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping


@dataclass(frozen=True)
class AnswerState:
    """Answer store entry for one touched question."""

    question_id: int
    selected_answer_id: int | None = None
    free_text: str | None = None
    time_spent: int = 0
    flagged: bool = False

    @property
    def is_answered(self) -> bool:
        return self.selected_answer_id is not None or bool(self.free_text)


@dataclass(frozen=True)
class SectionSpec:
    """A timed block of questions. ``question_ids`` keeps the display order."""

    key: str
    name: str
    duration_minutes: int | None
    question_ids: tuple[int, ...]


@dataclass(frozen=True)
class SessionState:
    sections: tuple[SectionSpec, ...]
    current_section: int = 0
    current_index: int = 0
    answers: Mapping[int, AnswerState] = field(default_factory=dict)
    completed_sections: frozenset[str] = frozenset()
    reviewing: bool = False
    ready_to_submit: bool = False
    submitted: bool = False
    submission_failed: bool = False
    submission: tuple[dict, ...] | None = None

    @classmethod
    def create(cls, question_ids, sections=None, duration_minutes=None) -> SessionState:
        """
        Build the initial state.

        Without sections every question lives in one implicit section timed
        by the whole simulation's duration. Sections without questions are
        dropped so navigation never lands on an empty section.
        """
        specs = tuple(
            SectionSpec(
                key=str(section.get('key', position)),
                name=section.get('name', ''),
                duration_minutes=section.get('duration_minutes'),
                question_ids=tuple(section['question_ids']),
            )
            for position, section in enumerate(sections or [])
            if section['question_ids']
        )
        if not specs:
            specs = (SectionSpec('all', '', duration_minutes, tuple(question_ids)),)
        return cls(sections=specs)

    @property
    def question_ids(self) -> tuple[int, ...]:
        return tuple(qid for section in self.sections for qid in section.question_ids)

    @property
    def active_section(self) -> SectionSpec:
        return self.sections[self.current_section]

    @property
    def current_question_id(self) -> int | None:
        ids = self.question_ids
        if 0 <= self.current_index < len(ids):
            return ids[self.current_index]
        return None

    @property
    def is_last_section(self) -> bool:
        return self.current_section == len(self.sections) - 1

    def section_range(self, position: int) -> range:
        start = sum(len(s.question_ids) for s in self.sections[:position])
        return range(start, start + len(self.sections[position].question_ids))

    def section_of(self, index: int) -> int | None:
        for position in range(len(self.sections)):
            if index in self.section_range(position):
                return position
        return None


# ============================================================================
# Actions
# ============================================================================

@dataclass(frozen=True)
class SelectAnswer:
    question_id: int
    answer_id: int
    time_spent: int | None = None


@dataclass(frozen=True)
class SetFreeText:
    question_id: int
    text: str
    time_spent: int | None = None


@dataclass(frozen=True)
class ToggleFlag:
    question_id: int


@dataclass(frozen=True)
class Goto:
    index: int


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Prev:
    pass


@dataclass(frozen=True)
class CompleteSection:
    pass


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class Timeout:
    pass


# ============================================================================
# Navigation policy
# ============================================================================

def can_enter(index: int, state: SessionState) -> bool:
    """True iff the question at ``index`` belongs to the current section."""
    if state.active_section.key in state.completed_sections:
        return False
    return index in state.section_range(state.current_section)


def can_review(index: int, state: SessionState) -> bool:
    """Questions of completed sections can be looked at once the exam is over."""
    position = state.section_of(index)
    if position is None:
        return False
    return state.sections[position].key in state.completed_sections


def section_status(state: SessionState) -> list[tuple[int, str]]:
    """Status dot per question of the current section: answered, flagged or unanswered."""
    statuses = []
    for qid in state.active_section.question_ids:
        entry = state.answers.get(qid)
        if entry is not None and entry.flagged:
            statuses.append((qid, 'flagged'))
        elif entry is not None and entry.is_answered:
            statuses.append((qid, 'answered'))
        else:
            statuses.append((qid, 'unanswered'))
    return statuses


def _is_editable(question_id: int, state: SessionState) -> bool:
    if state.submitted:
        return False
    return question_id in state.active_section.question_ids and \
        state.active_section.key not in state.completed_sections


# ============================================================================
# Reducer
# ============================================================================

def _upsert(state: SessionState, question_id: int, **changes) -> SessionState:
    answers = dict(state.answers)
    entry = answers.get(question_id) or AnswerState(question_id=question_id)
    answers[question_id] = replace(entry, **changes)
    return replace(state, answers=answers)


def _select_answer(state, action):
    if not _is_editable(action.question_id, state):
        return state
    changes = {'selected_answer_id': action.answer_id}
    if action.time_spent is not None:
        changes['time_spent'] = action.time_spent
    return _upsert(state, action.question_id, **changes)


def _set_free_text(state, action):
    if not _is_editable(action.question_id, state):
        return state
    changes = {'free_text': action.text}
    if action.time_spent is not None:
        changes['time_spent'] = action.time_spent
    return _upsert(state, action.question_id, **changes)


def _toggle_flag(state, action):
    if not _is_editable(action.question_id, state):
        return state
    entry = state.answers.get(action.question_id)
    return _upsert(state, action.question_id, flagged=not (entry.flagged if entry else False))


def _goto(state, action):
    if state.submitted:
        return state
    if can_enter(action.index, state):
        return replace(state, current_index=action.index, reviewing=False)
    # Once every section is done, completed questions stay visible read-only.
    if state.ready_to_submit and can_review(action.index, state):
        return replace(state, current_index=action.index, reviewing=True)
    return state


def _next(state, action):
    return _goto(state, Goto(state.current_index + 1))


def _prev(state, action):
    return _goto(state, Goto(state.current_index - 1))


def _complete_section(state, action):
    if state.submitted or state.active_section.key in state.completed_sections:
        return state
    completed = state.completed_sections | {state.active_section.key}
    if state.is_last_section:
        return replace(state, completed_sections=completed, ready_to_submit=True)
    following = state.current_section + 1
    return replace(
        state,
        completed_sections=completed,
        current_section=following,
        current_index=state.section_range(following).start,
    )


def _submit(state, action):
    if state.submitted or not state.ready_to_submit:
        return state
    return replace(
        state,
        submitted=True,
        submission_failed=False,
        submission=build_submission(state),
    )


def _timeout(state, action):
    was_last = state.is_last_section
    state = _complete_section(state, action)
    if was_last:
        state = _submit(state, action)
    return state


_HANDLERS = {
    SelectAnswer: _select_answer,
    SetFreeText: _set_free_text,
    ToggleFlag: _toggle_flag,
    Goto: _goto,
    Next: _next,
    Prev: _prev,
    CompleteSection: _complete_section,
    Submit: _submit,
    Timeout: _timeout,
}


def apply_action(state: SessionState, action) -> SessionState:
    """Return the state that follows ``action``. Unknown actions are ignored."""
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action)


def build_submission(state: SessionState) -> tuple[dict, ...]:
    """
    Package one answer per simulation question, untouched ones included.

    The answer store itself is left as is so a failed upload can be retried.
    """
    packaged = []
    for qid in state.question_ids:
        entry = state.answers.get(qid) or AnswerState(question_id=qid)
        packaged.append({
            'questionId': qid,
            'answerId': entry.selected_answer_id,
            'answerText': entry.free_text,
            'timeSpent': entry.time_spent,
            'flagged': entry.flagged,
        })
    return tuple(packaged)


def mark_submission_failed(state: SessionState) -> SessionState:
    """Reopen a submitted state after a transport failure, keeping every answer."""
    if not state.submitted:
        return state
    return replace(state, submitted=False, submission_failed=True, submission=None)


# ============================================================================
# Section timer
# ============================================================================

class SectionTimer:
    """
    One-tick-per-second countdown for the active section.

    ``tick`` reports expiry exactly once; later ticks are inert until
    ``reset`` arms the timer for the next section.
    """

    def __init__(self, duration_minutes: int | None) -> None:
        self.reset(duration_minutes)

    def reset(self, duration_minutes: int | None) -> None:
        self._total = max(int(duration_minutes or 0) * 60, 0)
        self._elapsed = 0
        self._fired = False
        self._running = duration_minutes is not None

    @property
    def remaining_seconds(self) -> int:
        return max(self._total - self._elapsed, 0)

    @property
    def expired(self) -> bool:
        return self._fired

    def pause(self) -> None:
        self._running = False

    def resume(self) -> None:
        if not self._fired and self._total:
            self._running = True

    def tick(self) -> bool:
        """Advance one second. Returns True only on the tick that reaches zero."""
        if not self._running or self._fired:
            return False
        self._elapsed += 1
        if self.remaining_seconds == 0:
            self._fired = True
            self._running = False
            return True
        return False
