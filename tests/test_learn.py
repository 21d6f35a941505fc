import pytest

from frenchmaster import learn
from frenchmaster.models import Category


def test_normalize_text_collapses_spaces_and_punctuation():
    assert learn.normalize_text("  Je  vais   BIEN. ") == "je vais bien"
    assert learn.normalize_text("l’école", allow_accent_fallback=True) == "l'ecole"


def test_check_answers_accepts_any_listed_form():
    assert learn.check_answers(["Salut"], [["bonjour", "salut"]])
    assert not learn.check_answers(["coucou"], [["bonjour", "salut"]])
    assert not learn.check_answers([], [["bonjour"]])


def test_check_answers_accent_fallback_is_opt_in():
    assert not learn.check_answers(["fenetre"], [["fenêtre"]])
    assert learn.check_answers(["fenetre"], [["fenêtre"]], allow_accent_fallback=True)


def test_build_prompt_for_verbs_asks_every_subject():
    verb = {
        "infinitive": "aller",
        "english": "to go",
        "conjugations": {"je": ["vais"], "tu": ["vas"], "il": ["va"], "nous": ["allons"], "vous": ["allez"], "ils": ["vont"]},
    }
    question, labels, solutions = learn.build_prompt(verb, Category.VERB)
    assert question == "aller (to go)"
    assert labels == ["je", "tu", "il", "nous", "vous", "ils"]
    assert solutions[3] == ["allons"]


def test_build_prompt_for_words_uses_all_translations():
    question, labels, solutions = learn.build_prompt({"english": "hi", "french": "salut"}, Category.WORD)
    assert (question, labels, solutions) == ("hi", ["French"], [["salut"]])


def test_ask_question_marks_correct_answer(monkeypatch, capsys):
    answers = iter(["bonjour"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    result = learn.ask_question({"english": "hello", "french": ["bonjour"]}, Category.WORD)
    assert result == {"correct": True, "revealed": False, "answers": ["bonjour"]}
    assert "Correct" in capsys.readouterr().out


def test_ask_question_quit(monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt="": "q")
    assert learn.ask_question({"english": "hello", "french": ["bonjour"]}, Category.WORD) == {"quit": True}


@pytest.mark.asyncio
async def test_session_loop_marks_answered_items_seen(service, monkeypatch):
    await service.initialize()
    answers = iter(["?", "?", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    await learn.session_loop(service, "dana", Category.WORD, rounds=3)
    seen = service.tracker.load_seen("word", "dana")
    assert len(seen) == 2
