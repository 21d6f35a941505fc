"""Runtime constants for the French Master content service.

Paths can be overridden with FRENCHMASTER_DB_PATH / FRENCHMASTER_KV_PATH so the
API, the console trainer and the maintenance CLI all share one database.
"""
from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DB_PATH = Path(os.environ.get("FRENCHMASTER_DB_PATH") or BASE_DIR / "frenchmaster.db")
KV_PATH = Path(os.environ.get("FRENCHMASTER_KV_PATH") or BASE_DIR / "frenchmaster_kv.json")

DB_NAME = "frenchMasterDB"
DB_VERSION = 2

STORE_WORDS = "words"
STORE_VERBS = "verbs"
STORE_SENTENCES = "sentences"
STORE_NUMBERS = "numbers"
STORE_USER_DATA = "userData"
CONTENT_STORES = (STORE_WORDS, STORE_VERBS, STORE_SENTENCES, STORE_NUMBERS)
ALL_STORES = CONTENT_STORES + (STORE_USER_DATA,)

# key-value keys mirroring user content (fallback persistence)
USER_WORDS_KEY = "frenchmaster_user_words"
USER_VERBS_KEY = "frenchmaster_user_verbs"
USER_SENTENCES_KEY = "frenchmaster_user_sentences"
USER_NUMBERS_KEY = "frenchmaster_numbers"

WORDS_SEEN_KEY = "french-learning-words-seen"
VERBS_SEEN_KEY = "french-learning-verbs-seen"
SENTENCES_SEEN_KEY = "french-learning-sentences-seen"
NUMBERS_SEEN_KEY = "french-learning-numbers-seen"

GUEST_USER_ID = "guest"

# categories whose bundled content is no longer served
RETIRED_PREDEFINED_CATEGORIES = frozenset({"verb"})

LEGACY_PREDEFINED_PREFIXES = ("word-", "verb-", "sentence-", "number-", "fallback-w")

VERB_SUBJECTS = ("je", "tu", "il", "nous", "vous", "ils")

USE_COLORS = os.environ.get("NO_COLOR") is None
