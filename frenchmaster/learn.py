#!/usr/bin/env python3
"""
Console trainer for French words, verbs, sentences and numbers.

Items come from FrenchDataService; the least recently seen item is asked next
and every answered card is logged as seen for the current user.
"""
from __future__ import annotations

import asyncio
import random
import unicodedata
from typing import Dict, List, Optional, Sequence, Tuple

from . import config
from .data_service import FrenchDataService
from .models import Category

QUIT_COMMANDS = {"q", "quit", "exit"}
SHOW_COMMANDS = {"?", "help", "answer"}
SKIP_COMMANDS = {"skip", "s"}
TRANSLATION_LABELS = ["French"]

COLOR_RESET = "\033[0m"
COLOR_WORD = "\033[95m"  # magenta
COLOR_VERB = "\033[96m"  # cyan
COLOR_TITLE = "\033[93m"  # yellow

MODULES = {
    "1": Category.WORD,
    "2": Category.VERB,
    "3": Category.SENTENCE,
    "4": Category.NUMBER,
}


def color_text(content: str, color_code: str) -> str:
    if not config.USE_COLORS:
        return content
    return f"{color_code}{content}{COLOR_RESET}"


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_text(
    value: str,
    allow_accent_fallback: bool = False,
    collapse_spaces: bool = True,
) -> str:
    cleaned = value.strip().lower().replace("’", "'").replace("œ", "oe")
    if collapse_spaces:
        cleaned = " ".join(cleaned.split())
    if allow_accent_fallback:
        cleaned = strip_accents(cleaned)
    return cleaned.rstrip(".!?").strip()


def check_answers(
    user_answers: Sequence[str],
    solutions: Sequence[Sequence[str]],
    allow_accent_fallback: bool = False,
) -> bool:
    """Each answer must match one of the accepted forms at its position."""
    if len(user_answers) != len(solutions):
        return False
    for answer, accepted in zip(user_answers, solutions):
        given = normalize_text(answer, allow_accent_fallback=allow_accent_fallback)
        options = {normalize_text(form, allow_accent_fallback=allow_accent_fallback) for form in accepted}
        if given not in options:
            return False
    return True


def build_prompt(item: Dict, category: Category) -> Tuple[str, List[str], List[List[str]]]:
    """Return (question, labels, accepted forms per label) for an item."""
    if category is Category.VERB:
        conjugations = item.get("conjugations") or {}
        labels = list(config.VERB_SUBJECTS)
        solutions = [
            [form for form in conjugations.get(subject, []) if form] or [""]
            for subject in labels
        ]
        return f"{item.get('infinitive')} ({item.get('english')})", labels, solutions
    french = item.get("french") or []
    if isinstance(french, str):
        french = [french]
    return str(item.get("english")), TRANSLATION_LABELS, [list(french)]


def ask_yes_no(prompt: str) -> bool:
    while True:
        answer = input(prompt).strip().lower()
        if answer in {"y", "yes"}:
            return True
        if answer in {"n", "no"}:
            return False
        print("Please answer yes or no.")


def show_solution(labels: Sequence[str], solutions: Sequence[Sequence[str]]) -> None:
    print("Correct answer:")
    for label, accepted in zip(labels, solutions):
        print(f"  - {label}: {' / '.join(accepted)}")


def collect_answers(labels: Sequence[str]) -> Tuple[Optional[List[str]], bool, bool]:
    answers: List[str] = []
    revealed = False
    aborted = False

    for label in labels:
        raw = input(f"  {label}: ").strip()
        lowered = raw.lower()
        if lowered in QUIT_COMMANDS:
            aborted = True
            break
        if lowered in SHOW_COMMANDS:
            revealed = True
            break
        if lowered in SKIP_COMMANDS or raw == "":
            answers.append("")
        else:
            answers.append(raw)

    return (answers if not aborted else None), revealed, aborted


def ask_question(item: Dict, category: Category) -> Dict:
    question, labels, solutions = build_prompt(item, category)

    print("\n----------------------------------------")
    header_color = COLOR_VERB if category is Category.VERB else COLOR_WORD
    print(color_text(category.value.upper(), header_color))
    print(color_text(f"Translate: {question}", COLOR_TITLE))
    if item.get("hint"):
        print(f"Hint: {item['hint']}")
    print("Type '?' to see the answer or 'q' to quit.")

    answers, revealed, aborted = collect_answers(labels)
    if aborted:
        return {"quit": True}

    if revealed or answers is None:
        show_solution(labels, solutions)
        return {"correct": False, "revealed": True, "answers": answers or []}

    if len(answers) < len(solutions):
        answers.extend([""] * (len(solutions) - len(answers)))

    if check_answers(answers, solutions):
        print("✅ Correct!")
        return {"correct": True, "revealed": False, "answers": answers}

    if check_answers(answers, solutions, allow_accent_fallback=True):
        print("✅ Correct, but watch the accents.")
        show_solution(labels, solutions)
        return {"correct": True, "revealed": False, "answers": answers}

    print("❌ Not quite.")
    if ask_yes_no("Show the correct answer? (yes/no): "):
        show_solution(labels, solutions)
        return {"correct": False, "revealed": True, "answers": answers}

    return {"correct": False, "revealed": False, "answers": answers}


async def session_loop(service: FrenchDataService, user_id: str, category: Category, rounds: int = 10) -> None:
    correct = 0
    asked = 0
    for idx in range(1, rounds + 1):
        item = await service.get_next_item(category, user_id)
        if item is None:
            print(f"No {category.table} to practice yet.")
            return
        print(f"\nQuestion {idx}/{rounds}")
        result = ask_question(item, category)
        if result.get("quit"):
            print("Session stopped.")
            break
        service.mark_item_as_seen(category, item.get("id"), user_id)
        asked += 1
        correct += int(bool(result.get("correct")))
    if asked:
        print(f"\nScore: {correct}/{asked} ({correct / asked * 100:.1f}%).")


def prompt_username() -> str:
    name = input("What is your name? (leave empty for guest) ").strip()
    return name or config.GUEST_USER_ID


def choose_module() -> Optional[Category]:
    print("\nWhat would you like to practice?")
    print("  1) Words")
    print("  2) Verbs")
    print("  3) Sentences")
    print("  4) Numbers")
    print("  q) Quit")
    answer = input("Choice: ").strip().lower()
    if answer in MODULES:
        return MODULES[answer]
    if answer in QUIT_COMMANDS:
        return None
    print("Unknown choice, try again.")
    return choose_module()


async def run_trainer() -> None:
    service = FrenchDataService.from_config()
    print("French trainer (words, verbs, sentences, numbers)")
    username = prompt_username()
    await service.initialize(username)
    if service.is_fallback:
        print("Storage is unavailable; practicing with a small built-in set.")
    print(f"Bonjour, {username}!")

    while True:
        category = choose_module()
        if category is None:
            print("Au revoir!")
            break
        await session_loop(service, username, category)


def main() -> None:
    random.seed()
    try:
        asyncio.run(run_trainer())
    except (KeyboardInterrupt, EOFError):
        print("\nInterrupted. Au revoir!")


if __name__ == "__main__":
    main()
