"""
Per-category feedback counters that bias future prompts.

Each counter lives in [0, MAX_LEVEL] and selects an entry from a fixed
keyword bank, so learned adjustments never leave a vetted phrase list.
Negative feedback raises a counter; saving a puzzle occasionally decays them.
"""
from __future__ import annotations

import json
import logging
import random
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, List, Optional


logger = logging.getLogger(__name__)

MAX_LEVEL = 3
HEAL_CHANCE = 0.25

FEEDBACK_COMPLEX = "complex"
FEEDBACK_DISTORTED = "distorted"
FEEDBACK_SCARY = "scary"
FEEDBACK_BORING = "boring"
FEEDBACK_UNWANTED_OBJECT = "unwanted_object"

FEEDBACK_TYPES = (
    FEEDBACK_COMPLEX,
    FEEDBACK_DISTORTED,
    FEEDBACK_SCARY,
    FEEDBACK_BORING,
    FEEDBACK_UNWANTED_OBJECT,
)

SIMPLIFY_BANK = [
    "",
    "use thick outlines and simple shapes",
    "very simple, minimal details, bold thick lines, easy to color",
    "preschool level, massive shapes, very thick lines, no small details",
]
QUALITY_BANK = [
    "",
    "ensure symmetry and clear features",
    "anatomically correct, high quality vector art, perfect proportions",
    "masterpiece, distinct features, professional illustration, perfect composition",
]
CUTENESS_BANK = [
    "",
    "friendly appearance, rounded shapes",
    "kawaii style, big eyes, happy expression",
    "extremely cute, baby style, adorable, soft edges, smiling",
]
EXCITEMENT_BANK = [
    "",
    "active pose",
    "dynamic motion, energetic composition",
    "exciting action pose, dramatic angle, dynamic movement",
]
PENALTY_BANK = [
    "",
    "focus on the main subject",
    "single subject only, do not add background characters",
    "single isolated subject, strictly no extra objects, no background characters",
]


@dataclass
class CategoryProfile:
    simplify_level: int = 0
    quality_boost: int = 0
    cuteness_boost: int = 0
    excitement_boost: int = 0
    object_penalty: int = 0


# feedback -> (profile field, keyword bank, explanation)
_FEEDBACK_FIELDS = {
    FEEDBACK_COMPLEX: ("simplify_level", SIMPLIFY_BANK, "Too Complex: forcing simplification"),
    FEEDBACK_DISTORTED: ("quality_boost", QUALITY_BANK, "Distortions: forcing anatomy/quality checks"),
    FEEDBACK_SCARY: ("cuteness_boost", CUTENESS_BANK, "Scary: forcing cuteness/rounding"),
    FEEDBACK_BORING: ("excitement_boost", EXCITEMENT_BANK, "Boring: forcing dynamic action"),
    FEEDBACK_UNWANTED_OBJECT: ("object_penalty", PENALTY_BANK, "Cluttered: removing extras/backgrounds"),
}


def _clamp(value: int) -> int:
    return max(0, min(MAX_LEVEL, int(value)))


class LearningStore:
    def __init__(self, path: Optional[str | Path] = None, rng: Optional[random.Random] = None):
        self.path = Path(path) if path is not None else None
        self._rng = rng or random.Random()
        self._profiles: Dict[str, CategoryProfile] = self._load()

    def _load(self) -> Dict[str, CategoryProfile]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable learning data %s: %s", self.path, e)
            return {}
        out: Dict[str, CategoryProfile] = {}
        names = [f.name for f in fields(CategoryProfile)]
        for category, item in (raw.items() if isinstance(raw, dict) else []):
            if isinstance(item, dict):
                out[str(category)] = CategoryProfile(**{n: _clamp(item.get(n, 0)) for n in names})
        return out

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {k: asdict(v) for k, v in self._profiles.items()}
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def profile(self, category: str) -> Optional[CategoryProfile]:
        return self._profiles.get(category)

    def record_feedback(self, category: str, feedback: str, weight: int = 1) -> CategoryProfile:
        if feedback not in _FEEDBACK_FIELDS:
            raise ValueError(f"Unknown feedback type: {feedback}")
        profile = self._profiles.setdefault(category, CategoryProfile())
        name = _FEEDBACK_FIELDS[feedback][0]
        setattr(profile, name, _clamp(getattr(profile, name) + int(weight)))
        logger.debug("Feedback category=%s type=%s weight=%s -> %s", category, feedback, weight, profile)
        self._save()
        return profile

    def record_save(self, category: str) -> None:
        """A kept puzzle means the settings are roughly right: relax each counter with some chance."""
        profile = self._profiles.get(category)
        if profile is None:
            return
        for f in fields(CategoryProfile):
            value = getattr(profile, f.name)
            if value > 0 and self._rng.random() < HEAL_CHANCE:
                setattr(profile, f.name, value - 1)
        self._save()

    def should_include_extra_objects(self, category: str) -> bool:
        profile = self._profiles.get(category)
        return profile is None or profile.object_penalty == 0

    def prompt_modifiers(self, category: str) -> str:
        profile = self._profiles.get(category)
        if profile is None:
            return ""
        parts: List[str] = []
        for name, bank, _ in _FEEDBACK_FIELDS.values():
            level = getattr(profile, name)
            if level > 0:
                parts.append(bank[level])
        return ", ".join(parts)

    def explanations(self, category: str) -> List[str]:
        profile = self._profiles.get(category)
        lines: List[str] = []
        if profile is not None:
            for name, _, text in _FEEDBACK_FIELDS.values():
                level = getattr(profile, name)
                if level > 0:
                    lines.append(f"{text} (Level {level}/{MAX_LEVEL})")
        return lines or ["System is using default settings."]


class CategoryLearning:
    """
    Binds a LearningStore to the catalogue category picked in the UI.

    Free-text prompts have no category. For those nothing is read or
    recorded, so unrelated ideas never steer each other's prompts.
    """

    def __init__(self, store: LearningStore, category: Optional[str] = None):
        self.store = store
        self.category = category

    @property
    def active(self) -> bool:
        return bool(self.category)

    def prompt_modifiers(self) -> Optional[str]:
        if not self.active:
            return None
        return self.store.prompt_modifiers(self.category) or None

    def record_feedback(self, feedback: str, weight: int = 1) -> bool:
        if not self.active:
            return False
        self.store.record_feedback(self.category, feedback, weight)
        return True

    def record_save(self) -> bool:
        if not self.active:
            return False
        self.store.record_save(self.category)
        return True

    def explanations(self) -> List[str]:
        if not self.active:
            return []
        return self.store.explanations(self.category)
