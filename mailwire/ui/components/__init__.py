"""Reusable UI components."""

from .prompts import ConfirmPrompt, ConsolePrompter, InputPrompt, Prompter

__all__ = [
    "ConfirmPrompt",
    "ConsolePrompter",
    "InputPrompt",
    "Prompter",
]
