"""
Level-specific prompt templates.

Each story level (Epic → Feature → Story → Task) has its own user-prompt
template, system persona and parent requirement, registered in LEVEL_SPECS.
The registry must cover every StoryLevel; this is checked at import time.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .request import AdditionalFields, GenerationRequest, ParentContext, StoryLevel

JSON_ONLY_INSTRUCTION = (
    "Always respond with valid JSON only. "
    "Do not include any text before or after the JSON object."
)


@dataclass(frozen=True)
class PromptContext:
    """Sanitized inputs for one prompt. Built once per request."""
    story_level: StoryLevel
    user_input: str
    parent_context: Optional[ParentContext] = None
    additional_fields: Optional[AdditionalFields] = None

    @classmethod
    def from_request(cls, request: GenerationRequest) -> "PromptContext":
        return cls(
            story_level=request.story_level,
            user_input=request.user_input,
            parent_context=request.parent_context,
            additional_fields=request.additional_fields
        )

    @property
    def extra_context(self) -> Optional[str]:
        if self.additional_fields is None:
            return None
        return self.additional_fields.context or None


@dataclass(frozen=True)
class BuiltPrompt:
    """System and user messages for the completion call."""
    system_prompt: str
    user_prompt: str


def _join(lines: List[Optional[str]]) -> str:
    return "\n".join(line for line in lines if line is not None)


def build_epic_prompt(context: PromptContext) -> str:
    """Epics are high-level business initiatives; no parent is consumed."""
    extra = context.extra_context
    return _join([
        "Generate a comprehensive Epic for the following business initiative:",
        "",
        f"Initiative: {context.user_input}",
        f"Additional Context: {extra}" if extra else None,
        "",
        "An Epic represents a large body of work that can be broken down into smaller Features. "
        "Please create a strategic Epic with:",
        "",
        "1. **Title**: Clear, outcome-focused title (max 60 chars)",
        "2. **Description**: 2-3 sentence overview of what this Epic achieves and why it matters",
        "3. **Business Objective**: The core business goal this Epic addresses",
        "4. **Success Metrics**: 3-5 measurable outcomes that define success "
        "(e.g., \"Increase user retention by 20%\")",
        "5. **Theme**: The strategic theme or category "
        "(e.g., \"Customer Experience\", \"Platform Scalability\")",
        "6. **Stakeholders**: Key people/teams involved "
        "(e.g., [\"Product Team\", \"Engineering\", \"Marketing\"])",
        "7. **Timeline**: Suggested start_date and target_date (ISO format YYYY-MM-DD)",
        "8. **Status**: Initial status (typically \"draft\")",
        "",
        "Return a JSON object with this structure:",
        """{
  "title": "Epic title",
  "description": "What this epic achieves",
  "businessObjective": "The strategic business goal",
  "successMetrics": ["Metric 1", "Metric 2", "Metric 3"],
  "theme": "Strategic theme",
  "stakeholders": ["Stakeholder 1", "Stakeholder 2"],
  "startDate": "2025-01-15",
  "targetDate": "2025-06-30",
  "status": "draft"
}""",
    ])


def build_feature_prompt(context: PromptContext) -> str:
    """Features are deliverable capabilities within a parent Epic."""
    parent = context.parent_context
    extra = context.extra_context
    epic_title = parent.title if parent else "none"
    return _join([
        "Generate a Feature for the following capability:",
        "",
        f"Feature Request: {context.user_input}",
        f"Parent Epic: {parent.title}" if parent else None,
        f"Epic Goal: {parent.business_objective or parent.description or 'Not specified'}"
        if parent else None,
        f"Additional Context: {extra}" if extra else None,
        "",
        "A Feature is a deliverable capability that provides value to users. It should be "
        "sizeable enough to warrant multiple User Stories. Please create a well-defined Feature with:",
        "",
        "1. **Title**: Clear, user-focused title describing the capability",
        "2. **Description**: 2-3 sentences explaining what this feature does and how it helps users",
        "3. **User Value**: The primary value/benefit users gain from this feature",
        "4. **Acceptance Criteria**: 4-6 high-level criteria that define when this feature is "
        "complete (use Given-When-Then format)",
        "5. **Epic Link**: Reference to parent epic if provided",
        "6. **Status**: Initial status (\"draft\", \"in_progress\", \"completed\")",
        "7. **Priority**: Business priority (High, Medium, Low)",
        "",
        "Return a JSON object with this structure:",
        """{
  "title": "Feature title",
  "description": "What this feature does",
  "userValue": "Why users need this",
  "acceptanceCriteria": [
    "Given... When... Then...",
    "Given... When... Then..."
  ],
  "epicId": "%s",
  "status": "draft",
  "priority": "Medium"
}""" % epic_title.replace('"', "'"),
    ])


def build_story_prompt(context: PromptContext) -> str:
    """User Stories are testable requirements from a user's perspective."""
    parent = context.parent_context
    fields = context.additional_fields or AdditionalFields()
    user_role = fields.user_role or "user"
    extra = context.extra_context
    return _join([
        "Generate a comprehensive User Story for the following requirement:",
        "",
        f"Requirement: {context.user_input}",
        f"Parent Feature: {parent.title}" if parent else None,
        f"Feature Value: {parent.user_value or parent.description or 'Not specified'}"
        if parent else None,
        f"User Role: {user_role}",
        f"Goal: {fields.goal}" if fields.goal else None,
        f"Context: {extra}" if extra else None,
        "",
        "A User Story describes a specific feature from an end user's perspective. "
        "Please create a rich, detailed User Story with:",
        "",
        "**Core Fields:**",
        "1. **Title**: Brief, descriptive title (max 60 chars)",
        "2. **Story**: Proper \"As a [user], I want [feature], so that [benefit]\" format",
        "3. **Acceptance Criteria**: 3-5 testable Given-When-Then statements",
        "4. **Priority**: Business priority (High, Medium, Low)",
        "5. **Story Points**: Complexity estimate (1, 2, 3, 5, 8, 13)",
        "",
        "**Context Fields:**",
        "6. **User Persona**: Target user type or segment",
        "7. **Problem Statement**: The specific problem this story solves",
        "8. **Business Value**: Business impact and value proposition",
        "9. **Assumptions/Risks**: 2-3 key assumptions or potential risks",
        "",
        "**Implementation Fields:**",
        "10. **Technical Notes**: Brief technical considerations or approaches",
        "11. **Dependencies**: Other stories or systems this depends on",
        "12. **Story Type**: Type of work (feature, spike, bug, chore, task)",
        "",
        "**Metadata:**",
        "13. **Tags**: 3-5 relevant tags (e.g., [\"frontend\", \"search\", \"high-value\"])",
        "14. **Definition of Ready**: 3-4 checklist items needed before work starts",
        "15. **Definition of Done**: 3-4 checklist items needed for completion",
        "16. **Confidence Level**: Confidence in estimates (1-5, where 5 is highest)",
        "17. **Customer Journey Stage**: Stage in user journey "
        "(e.g., \"Discovery\", \"Onboarding\", \"Usage\")",
        "",
        "Return a JSON object with this structure:",
        """{
  "title": "Story title",
  "story": "As a [role], I want [feature] so that [benefit]",
  "acceptanceCriteria": ["Given... When... Then...", "..."],
  "priority": "High|Medium|Low",
  "storyPoints": 5,
  "userPersona": "Target user type",
  "problemStatement": "The problem being solved",
  "businessValue": "Why this matters to the business",
  "assumptionsRisks": "Key assumptions or risks",
  "technicalNotes": "Technical approach or considerations",
  "dependencies": ["Dependency 1", "Dependency 2"],
  "storyType": "feature",
  "tags": ["tag1", "tag2", "tag3"],
  "definitionOfReady": {
    "items": [
      {"label": "Acceptance criteria defined", "checked": false},
      {"label": "Dependencies identified", "checked": false}
    ]
  },
  "definitionOfDone": {
    "items": [
      {"label": "Code reviewed and merged", "checked": false},
      {"label": "Tests written and passing", "checked": false}
    ]
  },
  "confidenceLevel": 4,
  "customerJourneyStage": "Usage",
  "status": "To Do"
}""",
    ])


def build_task_prompt(context: PromptContext) -> str:
    """Tasks are small, concrete pieces of work under a parent Story."""
    parent = context.parent_context
    extra = context.extra_context
    return _join([
        "Generate a Task for the following work item:",
        "",
        f"Task: {context.user_input}",
        f"Parent Story: {parent.title}" if parent else None,
        f"Story Description: {parent.description or 'Not specified'}" if parent else None,
        f"Additional Context: {extra}" if extra else None,
        "",
        "A Task is a small, concrete piece of work that can be completed in a few hours. "
        "Please create a specific, actionable Task with:",
        "",
        "1. **Title**: Clear, action-oriented title (starts with verb)",
        "2. **Description**: 2-3 sentences describing exactly what needs to be done",
        "3. **Technical Notes**: Specific implementation details, file paths, or code changes",
        "4. **Estimated Hours**: Time estimate (0.5, 1, 2, 4, 8 hours)",
        "5. **Story Type**: Always \"task\"",
        "6. **Status**: Initial status (\"To Do\")",
        "7. **Acceptance Criteria**: 2-3 simple, verifiable completion criteria",
        "",
        "Return a JSON object with this structure:",
        """{
  "title": "Task title (action-oriented)",
  "description": "Specific work to be done",
  "technicalNotes": "Implementation details",
  "estimatedHours": 2,
  "storyPoints": 1,
  "acceptanceCriteria": ["Criterion 1", "Criterion 2"],
  "storyType": "task",
  "status": "To Do",
  "priority": "Medium"
}""",
    ])


@dataclass(frozen=True)
class LevelSpec:
    """Everything that varies by story level."""
    requires_parent: bool
    persona: str
    build_user_prompt: Callable[[PromptContext], str]
    parent_level: Optional[StoryLevel] = None


LEVEL_SPECS: Dict[StoryLevel, LevelSpec] = {
    StoryLevel.EPIC: LevelSpec(
        requires_parent=False,
        persona=(
            "You are a strategic product leader creating high-level business initiatives. "
            "Focus on business outcomes, measurable success, and stakeholder alignment."
        ),
        build_user_prompt=build_epic_prompt,
    ),
    StoryLevel.FEATURE: LevelSpec(
        requires_parent=True,
        persona=(
            "You are an experienced product manager defining user-facing capabilities. "
            "Focus on user value, clear acceptance criteria, and feature scope."
        ),
        build_user_prompt=build_feature_prompt,
        parent_level=StoryLevel.EPIC,
    ),
    StoryLevel.STORY: LevelSpec(
        requires_parent=True,
        persona=(
            "You are an expert agile coach and product owner. Create detailed, well-structured "
            "user stories with comprehensive metadata. Focus on testable acceptance criteria, "
            "risk identification, and implementation guidance."
        ),
        build_user_prompt=build_story_prompt,
        parent_level=StoryLevel.FEATURE,
    ),
    StoryLevel.TASK: LevelSpec(
        requires_parent=True,
        persona=(
            "You are a technical lead breaking down work into implementable tasks. "
            "Focus on specific, actionable work items with clear technical details."
        ),
        build_user_prompt=build_task_prompt,
        parent_level=StoryLevel.STORY,
    ),
}

_unregistered = set(StoryLevel) - set(LEVEL_SPECS)
if _unregistered:
    raise RuntimeError(f"No prompt template registered for levels: {sorted(l.value for l in _unregistered)}")


def get_level_spec(level: StoryLevel) -> LevelSpec:
    """Return the registered LevelSpec for a level."""
    return LEVEL_SPECS[StoryLevel(level)]


def get_system_prompt(level: StoryLevel) -> str:
    """Persona for the level followed by the JSON-only instruction."""
    return f"{get_level_spec(level).persona} {JSON_ONLY_INSTRUCTION}"


def build_prompt(context: PromptContext) -> BuiltPrompt:
    """Render the system and user prompts for a context."""
    spec = get_level_spec(context.story_level)
    return BuiltPrompt(
        system_prompt=get_system_prompt(context.story_level),
        user_prompt=spec.build_user_prompt(context)
    )
