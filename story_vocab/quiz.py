"""Build multiple-choice quizzes from parsed story definitions and score them."""
from __future__ import annotations

import logging
import random

from story_vocab.errors import QuizFinished
from story_vocab.models import QuizQuestion, QuizResult, WordDefinition, WrongAnswer
from story_vocab.parsers.markup_parser import first_definitions_by_word

_log = logging.getLogger("story_vocab.quiz")

MAX_DISTRACTORS = 3
NOT_SELECTED = "(not selected)"


def question_prompt(word: str, part_of_speech: str) -> str:
    return f"What is the meaning of the word '{word}' ({part_of_speech})?"


def build_question(
    definition: WordDefinition,
    definitions: list[WordDefinition],
    rng: random.Random | None = None,
) -> QuizQuestion:
    """One question for *definition*, distractors drawn from *definitions*.

    Translations equal to the correct one never enter the pool, so a pool
    can run dry and leave a single-option question.
    """
    rng = rng or random
    correct = definition.translation
    pool = [d.translation for d in definitions if d.translation != correct]
    distractors = rng.sample(pool, min(MAX_DISTRACTORS, len(pool)))
    options = distractors + [correct]
    rng.shuffle(options)
    return QuizQuestion(
        word=definition.word,
        prompt_text=question_prompt(definition.word, definition.part_of_speech),
        options=options,
        correct_index=options.index(correct),
        correct_translation=correct,
        part_of_speech=definition.part_of_speech,
        context_meaning=definition.context_meaning,
    )


def build_quiz(
    original_words: list[str],
    definitions: list[WordDefinition],
    rng: random.Random | None = None,
) -> list[QuizQuestion]:
    """One question per requested word that the story actually defined.

    Matching is case-insensitive on trimmed text and uses the first
    definition of a word; words the story never tagged get no question.
    """
    by_word = first_definitions_by_word(definitions)
    questions: list[QuizQuestion] = []
    for word in original_words:
        definition = by_word.get(word.strip().lower())
        if definition is None:
            _log.info("No definition for '%s', skipping", word)
            continue
        questions.append(build_question(definition, definitions, rng))
    return questions


class QuizSession:
    """Answers are submitted once per question, in order, with no going back."""

    def __init__(self, questions: list[QuizQuestion]):
        self.questions = questions
        self.current_index = 0
        self.score = 0
        self.wrong_answers: list[WrongAnswer] = []

    @property
    def finished(self) -> bool:
        return self.current_index >= len(self.questions)

    @property
    def current_question(self) -> QuizQuestion | None:
        if self.finished:
            return None
        return self.questions[self.current_index]

    def submit_answer(self, selected_index: int) -> tuple[int, bool]:
        """Record an answer; return (score, finished)."""
        question = self.current_question
        if question is None:
            raise QuizFinished()

        if selected_index == question.correct_index:
            self.score += 1
        else:
            if 0 <= selected_index < len(question.options):
                answer = question.options[selected_index]
            else:
                answer = NOT_SELECTED
            self.wrong_answers.append(WrongAnswer(
                word=question.word,
                part_of_speech=question.part_of_speech,
                correct_translation=question.correct_translation,
                user_answer=answer,
                context_meaning=question.context_meaning,
            ))

        self.current_index += 1
        return self.score, self.finished

    def result(self) -> QuizResult:
        return QuizResult(
            total=len(self.questions),
            correct=self.score,
            wrong_answers=list(self.wrong_answers),
        )
