from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

if TYPE_CHECKING:
    from listing_guardian.agents.state import VerificationResult
    from listing_guardian.schemas.compliance_schema import Violation


@dataclass(frozen=True)
class Prompt:
    name: str
    template: str


_SUFFIX = "{improvements_section}{preserve_section}"

PROMPTS: Dict[str, Prompt] = {
    # Role-based fix prompts (default when no category is given)
    "MAIN": Prompt(
        name="MAIN",
        template=(
            "Make this product photo compliant as a marketplace MAIN image.\n"
            "- Pure white RGB(255,255,255) background, no gradients or shadows.\n"
            "- Remove every text overlay, badge, watermark and added graphic.\n"
            "- Product centered, filling about 85% of the frame.\n"
            "- Keep the exact product identity: labels, branding, colors, shape.\n"
            "- High resolution, sharp focus."
            + _SUFFIX
        ),
    ),
    "SECONDARY": Prompt(
        name="SECONDARY",
        template=(
            "Make this secondary product image marketplace compliant while keeping its scene.\n"
            "- Keep the lifestyle context, background and any infographic text.\n"
            "- Remove only prohibited elements such as 'Best Seller' or 'Amazon's Choice' badges.\n"
            "- The product must match the main product reference exactly."
            + _SUFFIX
        ),
    ),
    # Category-specific enhancement prompts
    "LIFESTYLE": Prompt(
        name="LIFESTYLE",
        template=(
            "Enhance this LIFESTYLE product image.\n"
            "GOAL: the product is the clear hero inside an authentic scene.\n"
            "- Improve lighting on the product, add subtle depth of field.\n"
            "- Product occupies at least 35-40% of the frame.\n"
            "MAIN PRODUCT REFERENCE: the product must match the attached main image exactly."
            + _SUFFIX
        ),
    ),
    "INFOGRAPHIC": Prompt(
        name="INFOGRAPHIC",
        template=(
            "Enhance this INFOGRAPHIC product image.\n"
            "GOAL: clearer information and a stronger product-to-feature connection.\n"
            "- Add a clean product cutout if the product is missing or weak.\n"
            "- Improve callouts, connector lines, text readability and hierarchy.\n"
            "MAIN PRODUCT REFERENCE: use it for any product cutout."
            + _SUFFIX
        ),
    ),
    "PRODUCT_IN_USE": Prompt(
        name="PRODUCT_IN_USE",
        template=(
            "Enhance this PRODUCT IN USE image.\n"
            "GOAL: the usage and its benefit are obvious.\n"
            "- Keep the product visible during the action, light it well.\n"
            "- Keep the demonstration natural.\n"
            "MAIN PRODUCT REFERENCE: the product must match exactly."
            + _SUFFIX
        ),
    ),
    "COMPARISON": Prompt(
        name="COMPARISON",
        template=(
            "Enhance this COMPARISON image.\n"
            "GOAL: the compared states are clearly distinguishable.\n"
            "- Add clear 'Before' / 'After' labels if missing.\n"
            "- Feature the product prominently on the positive side.\n"
            "MAIN PRODUCT REFERENCE: the product must be consistent throughout."
            + _SUFFIX
        ),
    ),
    "SIZE_CHART": Prompt(
        name="SIZE_CHART",
        template=(
            "Enhance this SIZE / DIMENSION image.\n"
            "GOAL: dimensions are unambiguous.\n"
            "- Clear dimension lines with consistent units and readable labels.\n"
            "- Add a scale reference object if it helps.\n"
            "MAIN PRODUCT REFERENCE: use it for reference sizing."
            + _SUFFIX
        ),
    ),
    "GENERIC": Prompt(
        name="GENERIC",
        template=(
            "Enhance this product image.\n"
            "GOAL: improve overall quality and effectiveness.\n"
            "ENHANCEMENT TYPE: {enhancement_type}"
            + _SUFFIX
            + "\n\nMAIN PRODUCT REFERENCE: ensure product consistency."
        ),
    ),
    "VERIFY": Prompt(
        name="VERIFY",
        template=(
            "You are the verification module of a marketplace image compliance checker.\n"
            "Critically evaluate an AI-generated fix of a {role} product image.\n\n"
            "CHECK 1 - PRODUCT IDENTITY (40%): same product, labels legible, colors and shape intact.\n"
            "CHECK 2 - COMPLIANCE FIXES (30%):\n{role_checks}\n"
            "CHECK 3 - QUALITY (20%): resolution, focus, no artifacts or halos.\n"
            "CHECK 4 - NO NEW ISSUES (10%): no warped text, shapes, lighting or editing seams.\n"
            "{context_section}\n"
            "Final score = identity*0.40 + compliance*0.30 + quality*0.20 + noNewIssues*0.10.\n\n"
            "Return ONLY JSON:\n"
            "{{\n"
            '  "score": <0-100>,\n'
            '  "isSatisfactory": <true if score >= {threshold:g} and productMatch>,\n'
            '  "productMatch": <bool>,\n'
            '  "componentScores": {{"identity": <0-100>, "compliance": <0-100>, '
            '"quality": <0-100>, "noNewIssues": <0-100>}},\n'
            '  "critique": "<most important remaining problems>",\n'
            '  "improvements": ["<actionable fix>"],\n'
            '  "passedChecks": ["<what is right>"],\n'
            '  "failedChecks": ["<what still fails>"],\n'
            '  "thinkingSteps": ["<one line per verification step, shown live>"]\n'
            "}}\n"
            "Be strict: flag for retry rather than pass a flawed image."
        ),
    ),
}

_CATEGORY_ALIASES = {
    "IN_USE": "PRODUCT_IN_USE",
    "SIZE_REFERENCE": "SIZE_CHART",
}

_ROLE_CHECKS = {
    "MAIN": (
        "- background is pure white RGB(255,255,255), no gray, gradient or shadow\n"
        "- all prohibited badges and text overlays removed\n"
        "- product centered and filling about 85% of the frame"
    ),
    "SECONDARY": (
        "- original scene/background preserved (NOT replaced with white)\n"
        "- only prohibited badges removed, infographic elements kept\n"
        "- product matches the main product reference"
    ),
}


def get_prompt(name: str) -> str:
    if name not in PROMPTS:
        raise KeyError(f"Unknown prompt: {name}")
    return PROMPTS[name].template


def resolve_category(category: Optional[str]) -> str:
    """Normalise e.g. 'size-reference' / 'Product in use' to a registry key ('GENERIC' if unknown)."""
    key = (category or "").strip().upper().replace("-", "_").replace(" ", "_")
    key = _CATEGORY_ALIASES.get(key, key)
    if key in PROMPTS and key not in ("GENERIC", "VERIFY"):
        return key
    return "GENERIC"


def _bullets(items: Iterable[str]) -> str:
    return "\n".join(f"- {i}" for i in items)


def _section(title: str, items: Sequence[str]) -> str:
    items = [i.strip() for i in items if i and i.strip()]
    if not items:
        return ""
    return f"\n\n{title}:\n{_bullets(items)}"


def feedback_block(prior: "VerificationResult") -> str:
    """What the previous attempt got wrong, for the next generation call."""
    lines: List[str] = [
        f"PREVIOUS ATTEMPT WAS REJECTED (verification score {prior.score:g}/100). "
        "Fix these problems in this attempt:"
    ]
    if prior.critique.strip():
        lines.append(f"Critique: {prior.critique.strip()}")
    if prior.failed_checks:
        lines.append("Failed checks:\n" + _bullets(prior.failed_checks))
    if prior.improvements:
        lines.append("Suggested improvements:\n" + _bullets(prior.improvements))
    return "\n".join(lines)


def compose_fix_prompt(
    category: Optional[str],
    enhancement_type: str,
    target_improvements: Sequence[str],
    preserve_elements: Sequence[str],
    prior_critique: Optional["VerificationResult"] = None,
    user_override: Optional[str] = None,
) -> str:
    """
    Build the generation instruction.

    `user_override` replaces the template verbatim. On retries (`prior_critique`
    set) the previous verification's feedback is prepended either way.
    """
    if user_override and user_override.strip():
        body = user_override
    else:
        key = resolve_category(category)
        body = get_prompt(key).format(
            enhancement_type=enhancement_type or "general",
            improvements_section=_section("TARGET IMPROVEMENTS", target_improvements),
            preserve_section=_section("CRITICAL - PRESERVE EXACTLY", preserve_elements),
        )

    if prior_critique is None:
        return body
    return f"{feedback_block(prior_critique)}\n\n{body}"


def compose_verification_prompt(
    role: str,
    *,
    violations: Sequence["Violation"] = (),
    listing_title: Optional[str] = None,
    has_reference: bool = False,
    threshold: float = 80.0,
) -> str:
    context: List[str] = []
    if listing_title:
        context.append(f"Listing title: {listing_title}")
    if violations:
        context.append(
            "Violations the fix had to resolve:\n"
            + _bullets(f"[{v.severity}] {v.category}: {v.message}" for v in violations)
        )
    if has_reference:
        context.append("A MAIN PRODUCT REFERENCE image is attached; the product must match it.")
    context_section = ("\nCONTEXT:\n" + "\n".join(context) + "\n") if context else ""

    role_key = role if role in _ROLE_CHECKS else "SECONDARY"
    return get_prompt("VERIFY").format(
        role=role_key,
        role_checks=_ROLE_CHECKS[role_key],
        context_section=context_section,
        threshold=threshold,
    )
