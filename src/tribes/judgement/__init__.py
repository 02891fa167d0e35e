"""Judgement module — moderation verdicts for events."""

from tribes.judgement.engine import EventJudge, Judgement

__all__ = ["EventJudge", "Judgement"]
