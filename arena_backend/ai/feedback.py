"""
Narrative feedback for the coach.

Converts numeric signals (adherence score, team morale, coaching
effectiveness) into short phrases for the UI, so the coach learns how
the psychology works without reading raw numbers.
"""

from typing import Optional


def get_adherence_feedback(score: Optional[float], name: str) -> str:
    """
    Thresholds:
    - 80-100: "{name} is locked into the gameplan."
    - 60-79: "{name} hesitates before following orders."
    - 30-59: "{name} is drifting from the gameplan!"
    - 0-29: "{name} has stopped listening entirely!"
    """
    if score is None:
        score = 0
    if score >= 80:
        return f"{name} is locked into the gameplan."
    if score >= 60:
        return f"{name} hesitates before following orders."
    if score >= 30:
        return f"{name} is drifting from the gameplan!"
    return f"{name} has stopped listening entirely!"


def get_morale_feedback(morale: Optional[float], team_name: str) -> str:
    if morale is None:
        morale = 0
    if morale >= 80:
        return f"{team_name} is fired up!"
    if morale >= 60:
        return f"{team_name} is feeling confident."
    if morale >= 40:
        return f"{team_name} is steady, but uncertain."
    if morale >= 20:
        return f"{team_name} is shaken."
    return f"{team_name} is on the verge of collapse."


def get_coaching_feedback(effectiveness: Optional[int], name: str) -> str:
    """
    Thresholds:
    - 80-100: "Your words really landed with {name}."
    - 60-79: "{name} took your advice on board."
    - 40-59: "{name} listened, politely."
    - 0-39: "" (no comment)
    """
    if effectiveness is None:
        effectiveness = 0
    if effectiveness >= 80:
        return f"Your words really landed with {name}."
    if effectiveness >= 60:
        return f"{name} took your advice on board."
    if effectiveness >= 40:
        return f"{name} listened, politely."
    return ""
