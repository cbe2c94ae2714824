"""
AI-written HR reports via Gemini on Vertex AI (google-genai).

Prerequisites:
1. pip install google-genai
2. gcloud auth application-default login
3. Vertex AI API enabled in the GCP project

The text generator is injectable so reports can be produced without GCP.
"""

import os
import re
import json
import logging
from typing import Optional, Callable, Dict, Any, List
from fastapi import HTTPException

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

# (system instruction, prompt, max output tokens) -> reply text
GenerateFn = Callable[[str, str, int], str]

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class ReportGenerationError(HTTPException):
    """The model reply contained no JSON object."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(status_code=502, detail=message)
        self.raw = raw


def _get_client():
    from google import genai

    project_id = os.getenv("GCP_PROJECT_ID")
    if not project_id:
        raise HTTPException(
            status_code=500,
            detail="GCP project not configured. Set GCP_PROJECT_ID in .env"
        )
    return genai.Client(
        vertexai=True,
        project=project_id,
        location=os.getenv("GCP_LOCATION", "global")
    )


def gemini_generate(system: str, prompt: str, max_tokens: int) -> str:
    """Default generator: one generate_content call on Vertex AI."""
    from google.genai import types

    client = _get_client()
    model = os.getenv("GENAI_MODEL", DEFAULT_MODEL)
    logger.info(f"Requesting report from {model}")
    response = client.models.generate_content(
        model=model,
        contents=prompt,
        config=types.GenerateContentConfig(
            system_instruction=system,
            temperature=0.3,
            max_output_tokens=max_tokens
        )
    )
    return response.text or ""


def _extract_json(content: str) -> Optional[Dict[str, Any]]:
    """
    Parse the first {...} span of a reply.

    Returns None when the span is not valid JSON.
    Raises ReportGenerationError when there is no span at all.
    """
    match = JSON_OBJECT.search(content)
    if not match:
        raise ReportGenerationError("Failed to generate valid JSON report", raw=content)
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error(f"Model returned malformed JSON: {e}")
        return None


def _dig(data: Dict[str, Any], *path: str, default: Any = "N/A") -> Any:
    for key in path:
        if not isinstance(data, dict) or data.get(key) is None:
            return default
        data = data[key]
    return data


# =============================================================================
# Performance report
# =============================================================================

PERFORMANCE_SYSTEM = "You are an HR analytics expert. Respond only with valid JSON, no markdown."


def build_performance_prompt(employee: Dict[str, Any], metrics: Dict[str, Any]) -> str:
    skills = ", ".join(employee.get("skills") or []) or "N/A"
    m = lambda *path: _dig(metrics, *path)
    return f"""You are an HR analytics expert. Analyze the following employee performance data and generate a comprehensive performance report.

EMPLOYEE DATA:
- Name: {employee.get('name', 'Unknown')}
- Role: {employee.get('role') or 'N/A'}
- Department: {employee.get('department') or 'N/A'}
- Team: {employee.get('team') or 'N/A'}
- Seniority Level: {employee.get('seniority_level') or 1}/5
- Years of Experience: {employee.get('years_of_experience') or 'N/A'}
- Skills: {skills}
- Hourly Rate: ${employee.get('hourly_rate') or 0}

PERFORMANCE METRICS:
- Total Commits: {m('commits', 'total')}
- Code Added: {m('commits', 'additions')} lines
- Code Removed: {m('commits', 'deletions')} lines
- Avg Commit Size: {m('commits', 'avg_size')} lines
- Last Commit: {m('commits', 'last_commit')}

- Total Tasks Assigned: {m('tasks', 'total')}
- Tasks Completed: {m('tasks', 'completed')}
- Tasks In Progress: {m('tasks', 'in_progress')}
- Tasks Pending: {m('tasks', 'pending')}
- Overdue Tasks: {m('tasks', 'overdue')}
- Task Completion Rate: {m('tasks', 'completion_rate')}%

- Total Estimated Hours: {m('hours', 'total_estimated')}
- Hours Completed: {m('hours', 'completed')}

- Workload Score: {m('performance', 'workload_score')}/100
- Stress Level: {m('performance', 'stress_level')}/100
- Efficiency Score: {m('performance', 'efficiency')}/100
- Productivity Score: {m('performance', 'productivity_score')}/100

Generate a JSON response with EXACTLY this structure (no markdown, just valid JSON):
{{
  "summary": "2-3 sentence executive summary of performance",
  "strengths": ["strength 1", "strength 2", "strength 3"],
  "areas_for_improvement": ["area 1", "area 2"],
  "recommendations": ["specific recommendation 1", "specific recommendation 2", "specific recommendation 3"],
  "appraisal_score": <number 1-100>,
  "budget_impact": {{
    "current_cost": <monthly cost based on hourly rate>,
    "projected_value": <estimated value delivered based on metrics>,
    "roi_assessment": "positive/neutral/negative with brief explanation"
  }},
  "promotion_readiness": "ready/developing/not ready - with brief explanation"
}}

Base your analysis ONLY on the provided metrics. Be specific and quantifiable."""


def generate_performance_report(
    employee: Dict[str, Any],
    metrics: Dict[str, Any],
    generate: Optional[GenerateFn] = None
) -> Dict[str, Any]:
    """Ask the model for a structured performance review of one employee."""
    generate = generate or gemini_generate
    content = generate(PERFORMANCE_SYSTEM, build_performance_prompt(employee, metrics), 1500)

    report = _extract_json(content)
    if report is None:
        return {
            "summary": "Report generated but format required adjustment.",
            "raw_content": content[:500] + "...",
        }
    return report


# =============================================================================
# Retention insight
# =============================================================================

RETENTION_SYSTEM = "You are an HR retention expert. Respond only with valid JSON."

RETENTION_FALLBACK = {
    "overall_assessment": "Analysis completed but format required adjustment.",
    "critical_actions": ["Check system logs"],
    "team_recommendations": [],
    "wellness_initiatives": [],
}


def build_retention_prompt(summary: Dict[str, Any], risks: List[Dict[str, Any]]) -> str:
    lines = []
    for e in risks:
        lines.append(
            f"- {e.get('name')} ({e.get('role')}, {e.get('team') or 'No Team'})\n"
            f"  Risk Score: {e.get('risk_score')}/100\n"
            f"  Workload: {e.get('workload')}%\n"
            f"  Activity Trend: {e.get('activity_trend')}%\n"
            f"  Overdue Tasks: {e.get('overdue')}\n"
            f"  Active Tasks: {e.get('active')}"
        )
    high_risk_block = "\n".join(lines) or "None"

    return f"""You are an HR retention expert. Analyze this team retention data and provide actionable insights.

RETENTION SUMMARY:
- Total Employees: {summary.get('total_employees', 0)}
- Critical Risk: {summary.get('critical_risk', 0)} employees
- High Risk: {summary.get('high_risk', 0)} employees
- Medium Risk: {summary.get('medium_risk', 0)} employees
- Low Risk: {summary.get('low_risk', 0)} employees
- Average Risk Score: {summary.get('avg_risk_score', 0)}/100

HIGH-RISK EMPLOYEES:
{high_risk_block}

Generate a JSON response with EXACTLY this structure (no markdown, just valid JSON):
{{
  "overall_assessment": "2-3 sentence assessment of team retention health",
  "critical_actions": ["immediate action 1", "immediate action 2", "immediate action 3"],
  "team_recommendations": ["team-level recommendation 1", "team-level recommendation 2"],
  "wellness_initiatives": ["wellness initiative 1", "wellness initiative 2", "wellness initiative 3"]
}}

Base recommendations ONLY on the provided data. Be specific and actionable."""


def generate_retention_insight(
    summary: Dict[str, Any],
    risks: Optional[List[Dict[str, Any]]] = None,
    generate: Optional[GenerateFn] = None
) -> Dict[str, Any]:
    """Ask the model for team-level retention actions."""
    generate = generate or gemini_generate
    content = generate(RETENTION_SYSTEM, build_retention_prompt(summary, risks or []), 1000)

    insight = _extract_json(content)
    if insight is None:
        return dict(RETENTION_FALLBACK)
    return insight
