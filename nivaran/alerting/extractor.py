"""
Risk Factor Extraction — assessment answers to human-readable risk factors.

Each of the ten assessment questions has a cutoff on the selected option
index. Answers at or above the cutoff emit that question's factor. The result
follows question order and is never empty.
"""

from typing import Iterable, NamedTuple

from nivaran.alerting.schemas import AnswerRecord


class RiskRule(NamedTuple):
    question_id: int
    cutoff: int
    factor: str


RISK_RULES: tuple[RiskRule, ...] = (
    RiskRule(0, 3, "Frequent thoughts about substance use"),
    RiskRule(1, 2, "History of relapse"),
    RiskRule(2, 3, "High stress levels"),
    RiskRule(3, 2, "Limited support system"),
    RiskRule(4, 3, "Frequent cravings"),
    RiskRule(5, 3, "High exposure to triggers"),
    RiskRule(6, 3, "Sleep disturbances"),
    RiskRule(7, 3, "Mood instability"),
    RiskRule(8, 3, "Social isolation"),
    RiskRule(9, 3, "Unstable living situation"),
)

FALLBACK_FACTOR = "Multiple high-risk indicators detected"

# Operator test trigger: every slot answered at or above its cutoff
SYNTHETIC_HIGH_RISK_ANSWERS: tuple[AnswerRecord, ...] = (
    AnswerRecord(question_id=0, selected_option=4),
    AnswerRecord(question_id=1, selected_option=2),
    AnswerRecord(question_id=2, selected_option=4),
    AnswerRecord(question_id=3, selected_option=3),
    AnswerRecord(question_id=4, selected_option=4),
    AnswerRecord(question_id=5, selected_option=4),
    AnswerRecord(question_id=6, selected_option=4),
    AnswerRecord(question_id=7, selected_option=4),
    AnswerRecord(question_id=8, selected_option=4),
    AnswerRecord(question_id=9, selected_option=4),
)


def normalize_answers(answers: Iterable) -> list[AnswerRecord]:
    """
    Well-formed answers as AnswerRecords, in input order.

    Accepts AnswerRecord objects or plain dicts (snake_case or camelCase keys).
    Entries with missing fields, non-integer values or a negative option are
    dropped.
    """
    try:
        items = list(answers or ())
    except TypeError:
        return []

    records: list[AnswerRecord] = []
    for answer in items:
        try:
            if isinstance(answer, AnswerRecord):
                question_id, option = answer.question_id, answer.selected_option
            elif isinstance(answer, dict):
                question_id = int(answer.get("question_id", answer.get("questionId")))
                option = int(answer.get("selected_option", answer.get("selectedOption")))
            else:
                continue
        except (TypeError, ValueError, ArithmeticError):
            continue
        if option < 0:
            continue
        records.append(AnswerRecord(question_id=question_id, selected_option=option))
    return records


def _first_answers(answers: Iterable) -> dict[int, int]:
    """question_id → selected option, keeping the first answer per question."""
    selected: dict[int, int] = {}
    for answer in normalize_answers(answers):
        selected.setdefault(answer.question_id, answer.selected_option)
    return selected


def extract_risk_factors(answers: Iterable) -> list[str]:
    """
    Map assessment answers to risk factor strings.

    Malformed entries are skipped (see `normalize_answers`). Never raises,
    never returns an empty list.
    """
    selected = _first_answers(answers)

    factors = [
        rule.factor
        for rule in RISK_RULES
        if rule.question_id in selected and selected[rule.question_id] >= rule.cutoff
    ]

    if not factors:
        factors.append(FALLBACK_FACTOR)

    return factors
