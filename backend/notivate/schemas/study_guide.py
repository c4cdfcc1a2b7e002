"""
Notivate Backend - StudyGuide Schema
======================================

What:  Pydantic models for the structured study guide produced by the
       synthesis adapter and returned to clients.
How:   Python attributes are snake_case; the wire format is camelCase via
       field aliases (`keyTerms`, `diagramSource`, `quizQuestions`). Models
       accept either form on input and FastAPI serializes by alias.
Who:   GeminiService (validates model output), routes (response bodies),
       NoteService (stores the dumped guide as JSON).

Validation is all-or-nothing: a guide either validates completely or the
adapter reports it as malformed. Nothing here repairs partial data except
the two normalizations the contract allows (key terms de-duplicated, a null
or absent `diagrams` read as an empty list).
"""

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DiagramType = Literal["flowchart", "mindmap", "timeline", "sequence"]
Difficulty = Literal["easy", "medium", "hard"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GuideSection(_WireModel):
    heading: str
    content: str
    key_terms: List[str] = Field(default_factory=list, alias="keyTerms")
    bullets: List[str] = Field(default_factory=list)

    @field_validator("key_terms")
    @classmethod
    def dedupe_key_terms(cls, v: List[str]) -> List[str]:
        """Key terms have set semantics; first occurrence wins, order kept."""
        seen = set()
        unique = []
        for term in v:
            if term not in seen:
                seen.add(term)
                unique.append(term)
        return unique


class Diagram(_WireModel):
    type: DiagramType
    title: str
    # Full Mermaid source, rendered client-side
    diagram_source: str = Field(alias="diagramSource", min_length=1)


class QuizQuestion(_WireModel):
    question: str
    answer: str
    difficulty: Difficulty


class StudyGuide(_WireModel):
    """
    A complete study guide.

    `sections` is never empty. `quiz_questions` holds 3-5 items by contract
    with the model prompt; that range is not re-checked here.
    """

    title: str
    subject: str
    summary: str
    sections: List[GuideSection] = Field(min_length=1)
    diagrams: List[Diagram] = Field(default_factory=list)
    quiz_questions: List[QuizQuestion] = Field(alias="quizQuestions")

    @field_validator("diagrams", mode="before")
    @classmethod
    def null_diagrams_to_empty(cls, v):
        return [] if v is None else v

    def to_wire(self) -> dict:
        """JSON-ready camelCase dict (the shape stored in notes.study_guide)."""
        return self.model_dump(by_alias=True, mode="json")
