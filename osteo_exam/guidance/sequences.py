"""Guided exam sequences: the timed, narrated steps for each exam type.

Step data (icons, Spanish prompts, durations) is fixed configuration loaded
once at import and never mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from ..posture.validation import ValidationTag

logger = logging.getLogger(__name__)

DEFAULT_EXAM_TYPE = "postura"


@dataclass(frozen=True)
class InstructionStep:
    icon: str
    title: str
    text: str
    duration_ms: int
    validation: ValidationTag
    audio_text: str = ""

    @property
    def spoken_text(self) -> str:
        return self.audio_text or self.text

    def to_dict(self) -> dict[str, object]:
        return {
            "icon": self.icon,
            "title": self.title,
            "text": self.text,
            "durationMs": self.duration_ms,
            "audioText": self.spoken_text,
            "validation": self.validation.value,
        }


def _step(icon: str, title: str, text: str, duration_ms: int, validation: ValidationTag) -> InstructionStep:
    # Every prompt is read aloud verbatim.
    return InstructionStep(icon=icon, title=title, text=text, duration_ms=duration_ms, validation=validation, audio_text=text)


ExamSequence = Tuple[InstructionStep, ...]

EXAM_SEQUENCES: Mapping[str, ExamSequence] = MappingProxyType(
    {
        "postura": (
            _step(
                "🧍",
                "Posición Inicial",
                "Colóquese de pie, relajado, con los brazos a los costados. Mire hacia la cámara.",
                5000,
                ValidationTag.BASIC_STANCE,
            ),
            _step(
                "👀",
                "Vista Frontal",
                "Mantenga la cabeza erguida y mire directamente a la cámara. Respiración normal.",
                8000,
                ValidationTag.FRONTAL_VIEW,
            ),
            _step(
                "💪",
                "Brazos Naturales",
                "Deje los brazos caer naturalmente a los costados. No fuerce la posición.",
                6000,
                ValidationTag.ARMS_DOWN,
            ),
            _step(
                "📸",
                "Captura Final",
                "Perfecto. Mantenga esta posición mientras capturamos los datos.",
                10000,
                ValidationTag.FINAL_CAPTURE,
            ),
        ),
        "rangos": (
            _step(
                "🧍",
                "Posición Base",
                "Colóquese en posición inicial: de pie, brazos a los costados.",
                4000,
                ValidationTag.BASIC_STANCE,
            ),
            _step(
                "🙋‍♀️",
                "Elevar Brazos",
                "Levante lentamente ambos brazos hacia los lados hasta la altura de los hombros.",
                8000,
                ValidationTag.ARMS_RAISED,
            ),
            _step(
                "🙌",
                "Brazos Arriba",
                "Ahora levante los brazos completamente por encima de la cabeza.",
                8000,
                ValidationTag.ARMS_OVERHEAD,
            ),
            _step(
                "🔄",
                "Rotación de Hombros",
                "Baje los brazos y haga círculos lentos con los hombros hacia atrás.",
                10000,
                ValidationTag.SHOULDER_ROTATION,
            ),
            _step(
                "🦵",
                "Flexión de Cadera",
                "Levante una pierna, flexionando la rodilla a 90 grados. Mantenga el equilibrio.",
                8000,
                ValidationTag.HIP_FLEXION,
            ),
        ),
        "simetria": (
            _step(
                "🧍",
                "Postura Simétrica",
                "Colóquese con los pies separados al ancho de los hombros, peso distribuido igual.",
                6000,
                ValidationTag.SYMMETRIC_STANCE,
            ),
            _step(
                "⚖️",
                "Verificación de Balance",
                "Mantenga esta posición. Vamos a analizar la simetría de sus hombros y caderas.",
                10000,
                ValidationTag.BALANCE,
            ),
        ),
        "completo": (
            _step(
                "🏥",
                "Examen Completo",
                "Realizaremos un análisis integral. Siga todas las instrucciones cuidadosamente.",
                5000,
                ValidationTag.READINESS,
            ),
        ),
    }
)

EXAM_TYPE_DESCRIPTIONS: Mapping[str, str] = MappingProxyType(
    {
        "postura": "Manténgase de pie en posición natural y relajada",
        "rangos": "Siga las indicaciones para mover las articulaciones",
        "simetria": "Posición frontal, brazos a los costados",
        "completo": "Evaluación completa - siga todas las indicaciones",
    }
)


def exam_types() -> list[str]:
    return list(EXAM_SEQUENCES)


def resolve_exam_type(exam_type: str | None) -> str:
    """Normalise an exam type name, falling back to `postura` for unknown values."""
    key = (exam_type or "").strip().lower()
    if key in EXAM_SEQUENCES:
        return key
    logger.warning("Unknown exam type %r; falling back to '%s'", exam_type, DEFAULT_EXAM_TYPE)
    return DEFAULT_EXAM_TYPE


def get_sequence(exam_type: str | None) -> tuple[str, ExamSequence]:
    resolved = resolve_exam_type(exam_type)
    return resolved, EXAM_SEQUENCES[resolved]


def total_duration_ms(exam_type: str | None) -> int:
    _, steps = get_sequence(exam_type)
    return sum(step.duration_ms for step in steps)


__all__ = [
    "InstructionStep",
    "ExamSequence",
    "EXAM_SEQUENCES",
    "EXAM_TYPE_DESCRIPTIONS",
    "DEFAULT_EXAM_TYPE",
    "exam_types",
    "resolve_exam_type",
    "get_sequence",
    "total_duration_ms",
]
