"""
Static catalog: healing levels, power actions, badges.

Each enum maps to a small frozen descriptor through a module-level table
(`LEVELS`, `POWER_ACTIONS`, `BADGES`). Lookups go through `.info`, so
there are no per-field switches.

Levels (ordinal, lowest → highest)
----------------------------------
  emergency   14 days   max bonus 4
  withdrawal  30 days   max bonus 4
  reality     60 days   max bonus 4
  glow_up     90 days   max bonus 4
  unbothered   0 days   terminal

Power actions
-------------
  one-time   : delete_photos 1.0, unfollow_ex 1.0, block_ex 1.0,
               archive_chats 0.5, delete_number 0.5
  repeatable : reality_journaling, new_experience, social_activity,
               fitness_challenge, help_others (0.25 each)
  custom     : repeatable, worth 0; fallback for unknown stored values
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Healing levels
# ---------------------------------------------------------------------------

class HealingLevel(int, enum.Enum):
    emergency = 0
    withdrawal = 1
    reality = 2
    glow_up = 3
    unbothered = 4

    @property
    def info(self) -> "LevelInfo":
        return LEVELS[self]

    @property
    def min_days_required(self) -> int:
        return LEVELS[self].min_days

    @property
    def max_bonus_days(self) -> int:
        return LEVELS[self].max_bonus_days

    @property
    def index(self) -> int:
        """1-based position shown to users."""
        return self.value + 1

    @property
    def next_level(self) -> Optional["HealingLevel"]:
        try:
            return HealingLevel(self.value + 1)
        except ValueError:
            return None

    @classmethod
    def lowest(cls) -> "HealingLevel":
        return cls.emergency

    @classmethod
    def from_raw(cls, raw: object) -> "HealingLevel":
        """
        Parse a stored level value. Accepts the level name, a legacy
        integer (or integer string) ordinal, or a HealingLevel. Anything
        empty, unparseable or out of range falls back to the lowest level.
        """
        if isinstance(raw, HealingLevel):
            return raw
        if isinstance(raw, bool) or raw is None:
            return cls.lowest()
        if isinstance(raw, int):
            return cls._from_ordinal(raw)
        text = str(raw).strip()
        if not text:
            return cls.lowest()
        if text in cls.__members__:
            return cls[text]
        try:
            return cls._from_ordinal(int(text))
        except ValueError:
            return cls.lowest()

    @classmethod
    def _from_ordinal(cls, value: int) -> "HealingLevel":
        try:
            return cls(value)
        except ValueError:
            return cls.lowest()


@dataclass(frozen=True)
class LevelInfo:
    title: str
    subtitle: str
    emoji: str
    color: str
    min_days: int          # 0 = terminal level
    max_bonus_days: int


LEVELS: dict[HealingLevel, LevelInfo] = {
    HealingLevel.emergency: LevelInfo(
        "Emergency Mode", "Heartbreak ICU. We stop the bleeding.", "💔", "FF6B6B", 14, 4,
    ),
    HealingLevel.withdrawal: LevelInfo(
        "Craving Detox", "You miss them, but you know better now.", "🧠", "9B59B6", 30, 4,
    ),
    HealingLevel.reality: LevelInfo(
        "Reality Mode", "You see the situation clearly, even if it stings.", "🪞", "3498DB", 60, 4,
    ),
    HealingLevel.glow_up: LevelInfo(
        "Glow-Up Era", "More energy goes to you than to them.", "✨", "F39C12", 90, 4,
    ),
    HealingLevel.unbothered: LevelInfo(
        "Unbothered Mode", "You finished thinking about them for real.", "🏆", "2ECC71", 0, 4,
    ),
}


# ---------------------------------------------------------------------------
# Power actions
# ---------------------------------------------------------------------------

class PowerActionType(str, enum.Enum):
    delete_photos = "delete_photos"
    unfollow_ex = "unfollow_ex"
    block_ex = "block_ex"
    archive_chats = "archive_chats"
    delete_number = "delete_number"
    reality_journaling = "reality_journaling"
    new_experience = "new_experience"
    social_activity = "social_activity"
    fitness_challenge = "fitness_challenge"
    help_others = "help_others"
    custom = "custom"

    @property
    def info(self) -> "PowerActionInfo":
        return POWER_ACTIONS[self]

    @property
    def bonus_value(self) -> float:
        return POWER_ACTIONS[self].bonus_days

    @property
    def is_repeatable(self) -> bool:
        return POWER_ACTIONS[self].repeatable

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "PowerActionType":
        try:
            return cls(raw)
        except ValueError:
            return cls.custom


@dataclass(frozen=True)
class PowerActionInfo:
    display_name: str
    description: str
    icon: str
    bonus_days: float
    repeatable: bool


POWER_ACTIONS: dict[PowerActionType, PowerActionInfo] = {
    PowerActionType.delete_photos: PowerActionInfo(
        "Delete Photos", "Delete their photos from your phone", "trash.fill", 1.0, False,
    ),
    PowerActionType.unfollow_ex: PowerActionInfo(
        "Unfollow Them", "Unfollow them on social media", "person.badge.minus", 1.0, False,
    ),
    PowerActionType.block_ex: PowerActionInfo(
        "Block Them", "Block them to remove temptation", "hand.raised.fill", 1.0, False,
    ),
    PowerActionType.archive_chats: PowerActionInfo(
        "Archive Chats", "Archive or delete old conversations", "archivebox.fill", 0.5, False,
    ),
    PowerActionType.delete_number: PowerActionInfo(
        "Delete Number", "Delete their number so you can't text", "phone.down.fill", 0.5, False,
    ),
    PowerActionType.reality_journaling: PowerActionInfo(
        "Reality Journaling", "Write down what the relationship was really like", "book.fill", 0.25, True,
    ),
    PowerActionType.new_experience: PowerActionInfo(
        "New Experience", "Do something you have never done before", "sparkles", 0.25, True,
    ),
    PowerActionType.social_activity: PowerActionInfo(
        "Social Activity", "Spend time with friends or family", "person.3.fill", 0.25, True,
    ),
    PowerActionType.fitness_challenge: PowerActionInfo(
        "Fitness Challenge", "Move your body for at least 30 minutes", "figure.run", 0.25, True,
    ),
    PowerActionType.help_others: PowerActionInfo(
        "Help Others", "Do something kind for someone else", "hands.sparkles.fill", 0.25, True,
    ),
    PowerActionType.custom: PowerActionInfo(
        "Custom Action", "Something else that helped", "star.fill", 0.0, True,
    ),
}


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

class BadgeType(str, enum.Enum):
    first_day = "first_day"
    week_streak = "week_streak"
    two_week_streak = "two_week_streak"
    month_streak = "month_streak"
    deleted_folder = "deleted_folder"
    blocked_ex = "blocked_ex"
    unfollowed_all = "unfollowed_all"
    archived_chats = "archived_chats"
    deleted_number = "deleted_number"
    glow_up_reached = "glow_up_reached"
    unbothered_reached = "unbothered_reached"

    @property
    def info(self) -> "BadgeInfo":
        return BADGES[self]

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["BadgeType"]:
        """Return the badge type for a stored value, or None if unknown."""
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass(frozen=True)
class BadgeInfo:
    title: str
    emoji: str
    tagline: str


BADGES: dict[BadgeType, BadgeInfo] = {
    BadgeType.first_day: BadgeInfo("Day One", "🌱", "You showed up. That's the vibe."),
    BadgeType.week_streak: BadgeInfo("Week Warrior", "🔥", "A whole week? That's giving main character."),
    BadgeType.two_week_streak: BadgeInfo("Two Weeks Strong", "💪", "Two weeks of choosing yourself. Iconic."),
    BadgeType.month_streak: BadgeInfo("Month Master", "👑", "30 days of being that person. Obsessed."),
    BadgeType.deleted_folder: BadgeInfo("Photo Purge", "🗑️", "Deleted the receipts. Growth era unlocked."),
    BadgeType.blocked_ex: BadgeInfo("Blocked & Blessed", "🚫", "Blocked with love. Peace was chosen."),
    BadgeType.unfollowed_all: BadgeInfo("Digital Detox", "📵", "Unfollowed and unbothered. As you should."),
    BadgeType.archived_chats: BadgeInfo("Chat Cleanse", "🗄️", "Old threads archived. New chapter loading."),
    BadgeType.deleted_number: BadgeInfo("Number Gone", "📴", "No number, no 2am texts."),
    BadgeType.glow_up_reached: BadgeInfo("Glow-Up Achieved", "💅", "The glow-up is giving everything."),
    BadgeType.unbothered_reached: BadgeInfo("Unbothered Queen", "🏆", "Living rent-free in your own peace."),
}
