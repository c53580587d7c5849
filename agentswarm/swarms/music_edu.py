"""
音乐教育 Swarm
==============

流程：
    __start__ -> [theory-analyzer, instrument-simulator]（并行）
    theory-analyzer -> composition-generator
    [theory-analyzer, instrument-simulator] -> lesson-builder
    [composition-generator, lesson-builder] -> supervisor
    supervisor -> [math-harmonics, monetization-advisor]（并行）
    [math-harmonics, monetization-advisor] -> assembler -> 迭代或结束

报告包含五个教育评分维度（各自截断到 1..10）与总分（平均值，保留一位小数）。
"""

from typing import Any, Dict

from agentswarm.agents.assembler import (
    AssemblyInputs,
    clamp_score,
    mean_score,
)
from agentswarm.agents.base import NodeInputs
from agentswarm.graph.extractor import get_dict, get_list, get_str
from agentswarm.swarms.base import NodeSpec, SwarmDefinition
from agentswarm.types import NodeKind

THEORY = "theory-analyzer"
INSTRUMENTS = "instrument-simulator"
COMPOSITION = "composition-generator"
LESSONS = "lesson-builder"
SUPERVISOR = "supervisor"
MATH = "math-harmonics"
MONETIZATION = "monetization-advisor"
ASSEMBLER = "assembler"

SYSTEM_PROMPTS = {
    THEORY: """You are an expert music theory analyst specializing in music education.
Identify every theory concept the user's music education idea requires: scales, chords,
progressions, intervals, key and time signatures, circle-of-fifths relationships.

Return JSON:
{
  "agent": "theory-analyzer",
  "concepts": [{"name": "", "category": "scale|chord|progression|rhythm|interval|key",
                "description": "", "notation": "", "difficulty": "beginner|intermediate|advanced"}],
  "learning_path": ["<concept in teaching order>"],
  "prerequisites": ["<prior knowledge>"],
  "summary": ""
}
Return ONLY valid JSON, no markdown fences.""",

    INSTRUMENTS: """You are an expert in virtual instrument interface design for music education.
Configure interactive piano, guitar fretboard, drum pad and staff notation UIs, including
input mapping, sound triggering and visual feedback.

Return JSON:
{
  "agent": "instrument-simulator",
  "instruments": [{"type": "piano|guitar|drums|staff",
                   "config": {"range": "", "layout": "", "input_map": [], "visual_feedback": ""}}],
  "audio_config": {"sample_library": "", "synthesis_type": "sample|oscillator|hybrid"},
  "summary": ""
}
Return ONLY valid JSON, no markdown fences.""",

    COMPOSITION: """You are an algorithmic composition specialist for music education.
Write short example pieces that demonstrate the identified theory concepts, with note data
suitable for MIDI playback.

Return JSON:
{
  "agent": "composition-generator",
  "compositions": [{"name": "", "tempo_bpm": 90, "time_signature": "4/4", "key": "",
                    "tracks": [{"name": "", "instrument": "", "notes": []}]}],
  "midi_generation_code": "<code that generates MIDI data>",
  "summary": ""
}
Return ONLY valid JSON, no markdown fences.""",

    LESSONS: """You are an expert in interactive music education pedagogy.
Create structured lesson plans with explanations, exercises, quizzes and practice activities
that build from known to unknown.

Return JSON:
{
  "agent": "lesson-builder",
  "lessons": [{"title": "", "level": "beginner|intermediate|advanced", "objectives": [],
               "sections": [{"type": "explanation|exercise|quiz|practice", "content": ""}],
               "estimated_minutes": 15}],
  "quiz_bank": [{"question": "", "options": [], "correct": 0, "explanation": ""}],
  "summary": ""
}
Return ONLY valid JSON, no markdown fences.""",

    MATH: """You are a music mathematics and acoustics specialist.
Validate the frequency math, interval ratios, harmonic series and waveform formulas used by
the app, and provide implementations.

Return JSON:
{
  "agent": "math-harmonics",
  "calculations": [{"name": "", "formula": "", "explanation": "", "implementation": "", "verified": true}],
  "frequency_table": [{"note": "A4", "frequency_hz": 440.0, "midi_number": 69}],
  "harmonic_analysis": {"overtone_series": [], "consonance_ranking": []},
  "summary": ""
}
Return ONLY valid JSON, no markdown fences.""",

    MONETIZATION: """You are a music education platform monetization strategist.
Evaluate freemium, subscription and course-marketplace models for the concept.

Return JSON:
{
  "agent": "monetization-advisor",
  "model": "freemium|subscription|course-marketplace",
  "tiers": [{"name": "", "price": "", "features": []}],
  "content_strategy": "",
  "platform_suggestions": [],
  "estimated_revenue": "",
  "summary": ""
}
Return ONLY valid JSON, no markdown fences.""",

    SUPERVISOR: """You are the Music Education supervisor. You coordinate the theory analyzer,
composition generator, lesson builder and instrument simulator.

Verify that compositions match the theory, that lessons use configured instruments and valid
note ranges, that exercises are musically accurate and that difficulty progresses. Decide
whether another pass is needed to fix the issues you find.

Return JSON:
{
  "consistency_check": {
    "theory_composition_valid": true,
    "lesson_instrument_aligned": true,
    "exercise_accuracy": true,
    "progressive_difficulty": true,
    "issues": []
  },
  "fixes_applied": [],
  "quality_notes": [],
  "needs_iteration": false,
  "summary": "<2-3 sentence consistency assessment>"
}
Return ONLY valid JSON, no markdown fences.""",
}


def _context(inputs: NodeInputs, difficulty: bool = True) -> str:
    lines = [f"Music Education Idea: {inputs.query}", f"Focus: {inputs.field('focus_area')}"]
    if difficulty:
        lines.append(f"Difficulty: {inputs.field('difficulty')}")
    return "\n".join(lines)


def _supervisor_notes(inputs: NodeInputs) -> str:
    verdict = inputs.verdict
    return verdict.summary if verdict is not None and verdict.summary else "N/A"


def entry_prompt(inputs: NodeInputs) -> str:
    focus = inputs.field("focus_area")
    difficulty = inputs.field("difficulty")
    hints = ""
    if focus:
        hints += f"\nFocus Area: {focus}"
    if difficulty:
        hints += f"\nTarget Difficulty: {difficulty}"
    return f"Design a music education app/tool based on this idea:\n\n{inputs.query}{hints}"


def composition_prompt(inputs: NodeInputs) -> str:
    return (
        f"{_context(inputs)}\n\n"
        f"Theory Analysis:\n{inputs.result(THEORY)}\n\n"
        "Generate compositions that teach and demonstrate the identified theory concepts."
    )


def lesson_prompt(inputs: NodeInputs) -> str:
    return (
        f"{_context(inputs)}\n\n"
        f"Theory Analysis:\n{inputs.result(THEORY)}\n\n"
        f"Instrument Configurations:\n{inputs.result(INSTRUMENTS)}\n\n"
        "Create lessons that use the available instruments for interactive exercises."
    )


def math_prompt(inputs: NodeInputs) -> str:
    return (
        f"{_context(inputs, difficulty=False)}\n\n"
        f"Theory Concepts:\n{inputs.result(THEORY)}\n\n"
        f"Compositions:\n{inputs.result(COMPOSITION)}\n\n"
        f"Supervisor Notes:\n{_supervisor_notes(inputs)}\n\n"
        "Validate all frequency math, interval ratios, and provide implementation code."
    )


def monetization_prompt(inputs: NodeInputs) -> str:
    return (
        f"{_context(inputs)}\n\n"
        f"Theory Concepts:\n{inputs.result(THEORY)}\n\n"
        f"Lessons:\n{inputs.result(LESSONS)}\n\n"
        f"Instruments:\n{inputs.result(INSTRUMENTS)}\n\n"
        f"Supervisor Notes:\n{_supervisor_notes(inputs)}"
    )


def supervisor_header(inputs: NodeInputs) -> str:
    return _context(inputs)


def education_score(report: Dict[str, Any]) -> Dict[str, float]:
    """
    教育评分

    每个维度截断到 1..10，总分为五个维度的平均值（保留一位小数）。
    """
    concepts = report["concepts"]
    lessons = report["lessons"]
    instruments = report["instruments"]
    quiz_bank = report["quiz_bank"]

    interactive_sections = sum(
        1
        for lesson in lessons if isinstance(lesson, dict)
        for section in get_list(lesson, "sections")
        if isinstance(section, dict) and section.get("type") in ("exercise", "quiz")
    )

    scores = {
        "theory_depth": clamp_score(len(concepts) * 2),
        "interactivity": clamp_score(interactive_sections * 2),
        "audio_quality": clamp_score(len(instruments) * 2 + (2 if report["midi_code"] else 0)),
        "pedagogy": clamp_score(len(lessons) * 2 + len(quiz_bank)),
        "engagement": clamp_score(
            (3 if quiz_bank else 0)
            + (3 if instruments else 0)
            + (2 if report["compositions"] else 0)
            + (2 if report["learning_path"] else 0)
        ),
    }
    scores["overall"] = mean_score(list(scores.values()))
    return scores


def assemble_report(inputs: AssemblyInputs) -> Dict[str, Any]:
    theory = inputs.section(THEORY)
    composition = inputs.section(COMPOSITION)
    lessons = inputs.section(LESSONS)
    instruments = inputs.section(INSTRUMENTS)
    math = inputs.section(MATH)
    monetization = inputs.section(MONETIZATION)

    verdict = inputs.verdict
    supervisor = verdict.payload if verdict is not None and verdict.parsed else {}
    check = get_dict(supervisor, "consistency_check")

    report: Dict[str, Any] = {
        "concepts": get_list(theory, "concepts"),
        "learning_path": get_list(theory, "learning_path"),
        "prerequisites": get_list(theory, "prerequisites"),
        "compositions": get_list(composition, "compositions"),
        "midi_code": get_str(composition, "midi_generation_code"),
        "lessons": get_list(lessons, "lessons"),
        "quiz_bank": get_list(lessons, "quiz_bank"),
        "instruments": get_list(instruments, "instruments"),
        "audio_config": instruments.get("audio_config"),
        "math_analysis": {
            "calculations": get_list(math, "calculations"),
            "frequency_table": get_list(math, "frequency_table"),
            "harmonic_analysis": math.get("harmonic_analysis"),
        },
        "monetization": {key: monetization.get(key) for key in MONETIZATION_DEFAULTS},
        "consistency_check": {
            **{key: check.get(key) for key in CONSISTENCY_FLAGS},
            "issues": list(verdict.issues) if verdict is not None else [],
            "quality_notes": get_list(supervisor, "quality_notes"),
        },
        "verdict": (verdict.summary if verdict is not None else "") or None,
    }
    report["music_edu_score"] = education_score(report)
    return report


CONSISTENCY_FLAGS = (
    "theory_composition_valid",
    "lesson_instrument_aligned",
    "exercise_accuracy",
    "progressive_difficulty",
)

MONETIZATION_DEFAULTS: Dict[str, Any] = {
    "model": "freemium",
    "tiers": [],
    "content_strategy": "",
    "platform_suggestions": [],
    "estimated_revenue": "",
}

REPORT_DEFAULTS: Dict[str, Any] = {
    "audio_config": {"sample_library": "Web Audio API", "synthesis_type": "hybrid"},
    "math_analysis": {
        "harmonic_analysis": {"overtone_series": [], "consonance_ranking": []},
    },
    "monetization": MONETIZATION_DEFAULTS,
    "consistency_check": {flag: True for flag in CONSISTENCY_FLAGS},
    "verdict": "Music education app generated successfully.",
}


MUSIC_EDU = SwarmDefinition(
    name="music_edu",
    description="Music education app design: theory, instruments, compositions, lessons, math and monetization",
    payload_defaults={"focus_area": "", "difficulty": ""},
    nodes=(
        NodeSpec.of(THEORY, NodeKind.SPECIALIST,
                    system_prompt=SYSTEM_PROMPTS[THEORY], template=entry_prompt),
        NodeSpec.of(INSTRUMENTS, NodeKind.SPECIALIST,
                    system_prompt=SYSTEM_PROMPTS[INSTRUMENTS], template=entry_prompt),
        NodeSpec.of(COMPOSITION, NodeKind.SPECIALIST, after=[THEORY],
                    system_prompt=SYSTEM_PROMPTS[COMPOSITION], template=composition_prompt,
                    reads=[THEORY]),
        NodeSpec.of(LESSONS, NodeKind.SPECIALIST, after=[THEORY, INSTRUMENTS],
                    system_prompt=SYSTEM_PROMPTS[LESSONS], template=lesson_prompt,
                    reads=[THEORY, INSTRUMENTS]),
        NodeSpec.of(SUPERVISOR, NodeKind.SUPERVISOR, after=[COMPOSITION, LESSONS],
                    system_prompt=SYSTEM_PROMPTS[SUPERVISOR], header=supervisor_header,
                    reads=[THEORY, COMPOSITION, LESSONS, INSTRUMENTS]),
        NodeSpec.of(MATH, NodeKind.SPECIALIST, after=[SUPERVISOR],
                    system_prompt=SYSTEM_PROMPTS[MATH], template=math_prompt,
                    reads=[THEORY, COMPOSITION], reads_verdict=True),
        NodeSpec.of(MONETIZATION, NodeKind.SPECIALIST, after=[SUPERVISOR],
                    system_prompt=SYSTEM_PROMPTS[MONETIZATION], template=monetization_prompt,
                    reads=[THEORY, LESSONS, INSTRUMENTS], reads_verdict=True),
        NodeSpec.of(ASSEMBLER, NodeKind.ASSEMBLER, after=[MATH, MONETIZATION],
                    reducer=assemble_report, defaults=REPORT_DEFAULTS, label="Music education"),
    ),
)
