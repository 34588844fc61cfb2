"""
Bundled dialogue content and loader.

Question texts must stay unique per position across branches: when state is
lost the engine identifies the branch by the text of the message a button
was attached to.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from surveybot.dialogue.models import DialogueDefinition
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)

GROUP_REQUEST_OPTION = "Хочу в группу"

DEFAULT_DIALOGUE: dict[str, Any] = {
    "greeting": (
        "Здравствуйте! Я помогу разобраться, какой формат работы вам подойдёт. "
        "Выберите, что вам ближе:"
    ),
    "branches": [
        {
            "key": "client",
            "label": "Я клиент",
            "questions": [
                {
                    "text": "Как давно вас беспокоит ситуация, с которой вы хотите работать?",
                    "options": ["Меньше месяца", "От месяца до года", "Больше года"],
                },
                {
                    "text": "Был ли у вас опыт работы с психологом?",
                    "options": ["Да, и он был полезен", "Да, но без результата", "Нет, впервые"],
                },
                {
                    "text": "Какой формат встреч вам удобнее?",
                    "options": ["Индивидуально", "В группе", "Пока не знаю"],
                },
            ],
            "diagnosis": (
                "Судя по ответам, вам подойдёт поддерживающая терапия. "
                "Групповой формат поможет увидеть ситуацию со стороны."
            ),
            "finalOptions": [GROUP_REQUEST_OPTION, "Задать вопрос"],
            "delayed": "Хотите продолжить? Выберите, что для вас актуально:",
            "groupMenu": {
                "text": "Выберите группу, которая вам подходит:",
                "options": ["Группа поддержки (вторник)", "Терапевтическая группа (четверг)"],
            },
        },
        {
            "key": "psychologist",
            "label": "Я психолог",
            "questions": [
                {
                    "text": "Сколько лет вы практикуете?",
                    "options": ["До 2 лет", "2–5 лет", "Больше 5 лет"],
                },
                {
                    "text": "Есть ли у вас регулярная супервизия?",
                    "options": ["Да", "Иногда", "Нет"],
                },
            ],
            "diagnosis": (
                "Похоже, вам будет полезна работа в профессиональном сообществе "
                "и регулярный разбор случаев."
            ),
            "finalOptions": ["В балинтовскую группу", "На разбор практики"],
            "delayed": "Что из этого вам интересно прямо сейчас?",
        },
        {
            "key": "mixed",
            "label": "И то и другое",
            "questions": [
                {
                    "text": "Что для вас сейчас важнее?",
                    "options": ["Личная терапия", "Профессиональный рост", "Всё одинаково важно"],
                },
                {
                    "text": "Сколько времени в неделю вы готовы уделять встречам?",
                    "options": ["1–2 часа", "3–5 часов", "Больше 5 часов"],
                },
            ],
            "diagnosis": "Вам подойдёт смешанный формат: личная работа и профессиональные группы.",
            "finalOptions": [
                "Я клиент (хочу терапию)",
                "Я психолог (хочу как специалист)",
                "Задать вопрос",
            ],
            "delayed": "Уточните, в каком качестве вы хотите участвовать:",
            "groupMenu": {
                "text": "Выберите группу:",
                "options": ["Вечерняя группа", "Группа выходного дня"],
            },
        },
        {
            "key": "just_curious",
            "label": "Просто интересуюсь",
            "questions": [
                {
                    "text": "Откуда вы о нас узнали?",
                    "options": ["От знакомых", "Из соцсетей", "Другое"],
                },
            ],
            "diagnosis": "Спасибо за интерес! Мы пришлём вам подборку материалов.",
        },
    ],
}


def load_dialogue(path: str | Path | None = None) -> DialogueDefinition:
    """Load the dialogue from a JSON file, or the bundled content when no path is given."""
    if not path:
        return DialogueDefinition.model_validate(DEFAULT_DIALOGUE)

    source = Path(path)
    with source.open(encoding="utf-8") as fh:
        data = json.load(fh)
    dialogue = DialogueDefinition.model_validate(data)
    logger.info(
        "Dialogue loaded",
        extra={"path": str(source), "branches": [b.key for b in dialogue.branches]},
    )
    return dialogue
