"""Prompt templates for the specialised screenshot tools.

Pure string builders: no I/O, no state.
"""
from __future__ import annotations

WEBPAGE_FOCUS_AREAS = ("layout", "content", "navigation", "forms", "interactive", "accessibility")
MOBILE_FOCUS_AREAS = (
    "ui-design",
    "user-experience",
    "navigation",
    "accessibility",
    "performance",
    "onboarding",
)
MOBILE_PLATFORMS = ("ios", "android", "auto-detect")

_WEBPAGE_FOCUS = {
    "layout": "the layout structure, grid system, spacing, and visual hierarchy",
    "content": "the content, headings, body text, and information architecture",
    "navigation": "navigation elements, menus, breadcrumbs, and user pathways",
    "forms": "form elements, input fields, buttons, and validation indicators",
    "interactive": "interactive elements like buttons, links, hover states, and calls-to-action",
    "accessibility": (
        "accessibility features, contrast ratios, alt text indicators, and keyboard navigation"
    ),
}

_MOBILE_FOCUS = {
    "ui-design": (
        "UI design elements, visual hierarchy, color usage, typography, spacing, "
        "and component design"
    ),
    "user-experience": "user experience, flow efficiency, usability, and user journey optimization",
    "navigation": "navigation patterns, menu structures, tab bars, and user movement through the app",
    "accessibility": (
        "accessibility features, contrast ratios, touch targets, screen reader compatibility, "
        "and inclusive design"
    ),
    "performance": (
        "performance indicators, loading states, progress feedback, and perceived responsiveness"
    ),
    "onboarding": (
        "onboarding elements, tutorials, first-time user experience, and feature discovery"
    ),
}

_WEBPAGE_JSON_SCHEMA = (
    '{"page_title": "string", "url": "string (if visible)", '
    '"layout": {"header": "description", "navigation": "description", '
    '"main_content": "description", "sidebar": "description", "footer": "description"}, '
    '"content": {"headings": ["list"], "body_text": "summary", "key_elements": ["list"]}, '
    '"interactive_elements": {"buttons": ["list"], "links": ["list"], "forms": ["list"]}, '
    '"design": {"color_scheme": "description", "typography": "description", '
    '"branding": "description"}, '
    '"accessibility": {"score": "1-10", "issues": ["list"], "positive_aspects": ["list"]}, '
    '"usability": {"strengths": ["list"], "issues": ["list"], "recommendations": ["list"]}, '
    '"technical_notes": "technical observations"}'
)

_MOBILE_JSON_SCHEMA = (
    '{"app_name": "string (if visible)", "platform": "ios/android/auto-detected", '
    '"screen_type": "description", '
    '"ui_design": {"visual_hierarchy": "evaluation", "color_scheme": "description", '
    '"typography": "evaluation", "spacing_and_layout": "evaluation", "components": "description"}, '
    '"navigation": {"pattern": "description", "ease_of_use": "evaluation", '
    '"platform_compliance": "evaluation"}, '
    '"content": {"organization": "evaluation", "clarity": "evaluation", "density": "evaluation"}, '
    '"interactions": {"gestures": "description", "feedback": "evaluation", '
    '"responsiveness": "evaluation"}, '
    '"platform_guidelines": {"compliance_score": "1-10", "violations": ["list"], '
    '"best_practices": ["list"]}, '
    '"accessibility": {"score": "1-10", "issues": ["list"], "positive_aspects": ["list"]}, '
    '"ux_heuristics": {"visibility_of_status": "evaluation", "match_real_world": "evaluation", '
    '"user_control": "evaluation", "consistency": "evaluation", "error_prevention": "evaluation", '
    '"recognition_recall": "evaluation", "flexibility_efficiency": "evaluation", '
    '"aesthetic_design": "evaluation", "error_recovery": "evaluation", '
    '"help_documentation": "evaluation"}, '
    '"usability": {"strengths": ["list"], "issues": ["list"], "recommendations": ["list"]}, '
    '"technical_notes": "technical observations"}'
)

_UX_HEURISTICS = (
    "Nielsen's 10 usability heuristics evaluation; visibility of system status; "
    "match between system and real world; user control and freedom; consistency and standards; "
    "error prevention; recognition rather than recall; flexibility and efficiency of use; "
    "aesthetic and minimalist design; help users diagnose and recover from errors; "
    "help and documentation;"
)

_MOBILE_DETAILS = (
    "platform-specific UI components and patterns; compliance with platform design guidelines "
    "(Human Interface Guidelines for iOS, Material Design for Android); gesture support and "
    "interaction patterns; information architecture and content organization; state management "
    "and feedback mechanisms; responsive design and device compatibility; visual design polish "
    "and attention to detail; potential usability issues and improvement recommendations; "
    "accessibility compliance and inclusive design practices; technical implementation "
    "observations and potential optimizations."
)

_WEBPAGE_DETAILS = (
    "responsive design indicators, viewport information, and mobile optimization; visual design "
    "elements like colors, typography, and branding; user experience considerations and potential "
    "usability issues; any errors, warnings, or unusual states visible."
)


def build_webpage_prompt(
    focus_area: str | None = None,
    include_accessibility: bool = True,
    fmt: str = "json",
) -> str:
    parts = [
        "Analyze this webpage screenshot and provide detailed information about its "
        "structure, content, and design."
    ]
    if focus_area in _WEBPAGE_FOCUS:
        parts.append(f"Focus specifically on {_WEBPAGE_FOCUS[focus_area]}.")
    parts.append("Include specific details about:")
    if include_accessibility or focus_area == "accessibility":
        parts.append(
            "accessibility considerations, color contrast, font sizes, and assistive "
            "technology compatibility;"
        )
    parts.append(_WEBPAGE_DETAILS)
    if fmt == "json":
        parts.append(
            "Provide your analysis in a structured JSON format with the following schema: "
            + _WEBPAGE_JSON_SCHEMA
        )
    return " ".join(parts)


def build_mobile_prompt(
    platform: str = "auto-detect",
    focus_area: str | None = None,
    include_ux_heuristics: bool = True,
    fmt: str = "json",
) -> str:
    parts = [
        "Analyze this mobile app screenshot and provide comprehensive insights about its "
        "design, user experience, and platform adherence."
    ]
    if platform in ("ios", "android"):
        name = platform.upper()
        parts.append(
            f"This appears to be an {name} app, so please evaluate it against {name} "
            "design guidelines and conventions."
        )
    else:
        parts.append("Please identify the platform (iOS or Android) and evaluate it accordingly.")
    if focus_area in _MOBILE_FOCUS:
        parts.append(f"Focus specifically on {_MOBILE_FOCUS[focus_area]}.")
    parts.append("Include specific details about:")
    if include_ux_heuristics:
        parts.append(_UX_HEURISTICS)
    parts.append(_MOBILE_DETAILS)
    if fmt == "json":
        parts.append(
            "Provide your analysis in a structured JSON format with the following schema: "
            + _MOBILE_JSON_SCHEMA
        )
    return " ".join(parts)
