"""
Per-component configuration for the answer pipeline.

Every table a stage consults (keywords, templates, category routes, size
ceilings) lives here and is handed to the component's constructor, so a
deployment or a test can swap any of them without touching module state.
"""

from dataclasses import dataclass, field
from typing import Optional

from .config import Settings, get_settings

INTENTS = ("task", "study", "expense", "planning", "memory", "general")


@dataclass
class MemoryConfig:
    dimensions: int = 100
    similarity_weight: float = 0.7
    relevance_weight: float = 0.2
    recency_weight: float = 0.1
    recency_window_days: int = 30
    never_accessed_recency: float = 0.5
    initial_relevance: float = 1.0
    cleanup_days: int = 90
    cleanup_relevance_floor: float = 0.5


@dataclass
class ContextConfig:
    max_chars: int = 8000
    memory_truncate_to: int = 3
    tasks_truncate_to: int = 10
    expenses_truncate_to: int = 20
    query_search_limit: int = 10
    query_keep: int = 5
    recent_days: int = 30
    legacy_memory_limit: int = 20
    legacy_memory_category: str = "general"
    expense_window_days: int = 7
    preference_cache_hours: int = 6


@dataclass
class ClassifierConfig:
    descriptions: dict[str, str] = field(default_factory=lambda: {
        "task": "Questions about tasks, todos, planning, scheduling",
        "study": "Questions about study goals, learning, courses, progress",
        "expense": "Questions about spending, budget, money, finance",
        "planning": "General life planning, daily/weekly plans, priorities",
        "memory": "Questions about past conversations, preferences, insights",
        "general": "General questions, greetings, casual chat",
    })
    # Checked in insertion order, first hit wins.
    keywords: dict[str, list[str]] = field(default_factory=lambda: {
        "task": ["task", "todo", "nhiệm vụ", "deadline", "công việc", "hoàn thành"],
        "study": ["học", "study", "course", "tiến độ", "bài tập", "kiến thức"],
        "expense": ["chi tiêu", "tiền", "expense", "budget", "ngân sách", "đồng"],
        "planning": ["kế hoạch", "plan", "lên kế hoạch", "ưu tiên", "schedule"],
        "memory": ["nhớ", "memory", "preference", "sở thích", "insight", "trước đây"],
    })
    default_intent: str = "general"


@dataclass
class RewriterConfig:
    clear_min_length: int = 50
    template_max_length: int = 10
    clear_indicators: list[str] = field(default_factory=lambda: [
        "show", "list", "display", "get", "find",
        "what are", "how many", "when is", "where is",
        "hiển thị", "liệt kê", "cho tôi", "tìm",
    ])
    guides: dict[str, str] = field(default_factory=lambda: {
        "task": "Ask for tasks with filters: today/week, priority, status. Request sorting and time estimates.",
        "study": "Ask for study goals with progress %, modules, completion status.",
        "expense": "Ask for expenses with totals, categories, time periods (today/week/month).",
        "planning": "Ask for overview of tasks, goals, and schedule. Include time blocks.",
        "memory": "Ask to recall specific information or preferences from past interactions.",
        "general": "Make the question specific and measurable.",
    })
    # "{message}" is substituted with the user's text.
    templates: dict[str, str] = field(default_factory=lambda: {
        "task": "Show tasks for today with priority and status",
        "study": "Display study progress for all active goals",
        "expense": "Show expense summary for the last 7 days by category",
        "planning": "Provide an overview of tasks, study goals, and expenses",
        "memory": "Recall relevant information about: {message}",
        "general": "{message}",
    })


@dataclass
class CompressorConfig:
    remote_min_chars: int = 800
    target_tokens: int = 200
    focus_areas: dict[str, str] = field(default_factory=lambda: {
        "task": "Task titles, priorities, statuses, due dates. Aggregate counts.",
        "study": "Study goals, progress percentages, modules, completion status.",
        "expense": "Total amounts, categories, trends. Top spending categories.",
        "planning": "All context - tasks, study, expenses. High-level overview.",
        "memory": "Memory categories, key preferences, insights. Recent vs old.",
        "general": "High-level summary of all data. Key metrics and status.",
    })
    top_expense_categories: int = 3
    listed_study_goals: int = 3
    currency: str = "VND"


@dataclass
class RouterConfig:
    categories: dict[str, list[str]] = field(default_factory=lambda: {
        "task": ["preference", "task_pattern", "productivity"],
        "study": ["study", "preference", "learning_pattern"],
        "expense": ["expense", "budget", "finance"],
        "planning": ["preference", "goal", "productivity"],
        "memory": [],
        "general": ["preference", "insight"],
    })
    limits: dict[str, int] = field(default_factory=lambda: {
        "task": 2,
        "study": 2,
        "expense": 2,
        "planning": 3,
        "memory": 5,
        "general": 2,
    })
    default_limit: int = 2


@dataclass
class ReasoningConfig:
    history_turns: int = 3
    token_budget: int = 900


@dataclass
class FormatterConfig:
    remote_min_chars: int = 500
    styles: dict[str, str] = field(default_factory=lambda: {
        "task": "Bullet list with numbers. Action-oriented.",
        "study": "Progress-focused. Show percentages and metrics.",
        "expense": "Numbers first. Show totals and categories.",
        "planning": "Timeline format. Step-by-step.",
        "memory": "Story format. Conversational.",
        "general": "Direct answer. Supporting facts. Next steps.",
    })
    filler_patterns: list[str] = field(default_factory=lambda: [
        r"Based on (?:the|your) (?:data|context|information)[^,.]+(?:, |\. )",
        r"As (?:you can see|mentioned)[^,.]+(?:, |\. )",
        r"Looking at (?:the|your)[^,.]+(?:, |\. )",
        r"I can see that ",
    ])
    target_tokens: int = 200


@dataclass
class PipelineConfig:
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    rewriter: RewriterConfig = field(default_factory=RewriterConfig)
    compressor: CompressorConfig = field(default_factory=CompressorConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    reasoning: ReasoningConfig = field(default_factory=ReasoningConfig)
    formatter: FormatterConfig = field(default_factory=FormatterConfig)
    baseline_tokens: int = 3500
    apology_message: str = "Xin lỗi, hệ thống AI đang gặp sự cố. Vui lòng thử lại sau."
    version: str = "smart_v1"


def build_pipeline_config(settings: Optional[Settings] = None) -> PipelineConfig:
    """Default tables with the environment-tunable limits applied."""
    settings = settings or get_settings()
    return PipelineConfig(
        memory=MemoryConfig(
            dimensions=settings.embedding_dimensions,
            cleanup_days=settings.memory_cleanup_days,
        ),
        context=ContextConfig(
            max_chars=settings.context_max_chars,
            preference_cache_hours=settings.preference_cache_hours,
        ),
        reasoning=ReasoningConfig(token_budget=settings.reasoning_token_budget),
        baseline_tokens=settings.baseline_tokens,
        apology_message=settings.apology_message,
    )
