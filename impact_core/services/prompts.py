"""Few-shot prompt for pull request risk and impact estimation."""

from __future__ import annotations

from collections.abc import Sequence

_FEW_SHOT_EXAMPLES = """\
Example 1:
Files:
- src/auth/login.js
- src/auth/session.js
Commit: "fix login bug causing session timeout"
Output:
{"risk":55,"confidence":75,"impact":"high","summary":"Authentication logic modified: login and session handling changed","reason":"Auth files are security-critical; bugs here can lock users out or create vulnerabilities","suggested_tests":["auth/login.test.js","auth/session.test.js","auth/login.integration.test.js"]}

Example 2:
Files:
- docs/README.md
- CHANGELOG.md
Commit: "update readme with new API docs"
Output:
{"risk":5,"confidence":95,"impact":"low","summary":"Documentation files updated, no code logic changed","reason":"Only documentation changed, zero runtime impact","suggested_tests":[]}

Example 3:
Files:
- src/models/User.js
- src/services/paymentService.js
- src/routes/billing.js
Commit: "add subscription billing with Stripe"
Output:
{"risk":85,"confidence":80,"impact":"high","summary":"Payment system added: new billing route, payment service, and user model changes","reason":"Payment and billing are high-risk areas; database schema changes combined with financial logic require thorough testing","suggested_tests":["models/User.test.js","services/paymentService.test.js","routes/billing.test.js","services/paymentService.integration.test.js","e2e/billing.e2e.test.js"]}"""

_RESPONSE_SHAPE = """\
{
  "risk": <number 0-100>,
  "confidence": <number 0-100>,
  "impact": "<low|medium|high>",
  "summary": "<short explanation of what changed>",
  "reason": "<why this is risky or not>",
  "suggested_tests": ["test1","test2"]
}"""


def build_risk_prompt(changed_files: Sequence[str], commit_message: str) -> str:
    files_text = "\n".join(f"- {path}" for path in changed_files)
    return (
        "/no_think\n"
        "You are an AI system that analyzes pull requests.\n\n"
        "Your job:\n"
        "Estimate risk and impact of code changes.\n\n"
        "Rules:\n"
        "- Risk score: 0 to 100\n"
        "- Confidence: 0 to 100\n"
        "- Impact: low, medium, or high\n"
        "- Respond ONLY in JSON\n\n"
        "## Few-Shot Examples\n\n"
        f"{_FEW_SHOT_EXAMPLES}\n\n"
        "## Now Analyze This PR\n\n"
        "Changed files:\n"
        f"{files_text}\n\n"
        "Commit message:\n"
        f'"{commit_message}"\n\n'
        "Return JSON:\n"
        f"{_RESPONSE_SHAPE}"
    )
