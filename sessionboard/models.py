"""Pydantic models matching the frontend TypeScript types."""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

# ── Project / session list models ──────────────────────────────────

class Project(BaseModel):
    dirName: str
    decodedPath: str
    projectName: str
    sessionFiles: list[str] = Field(default_factory=list)


class SessionSummary(BaseModel):
    sessionId: str
    projectPath: str
    projectName: str
    branch: Optional[str] = None
    cwd: Optional[str] = None
    startedAt: str
    lastActiveAt: str
    durationMs: int = 0
    messageCount: int = 0
    userMessageCount: int = 0
    assistantMessageCount: int = 0
    isActive: bool = False
    model: Optional[str] = None
    version: Optional[str] = None
    fileSizeBytes: int = 0


class SessionSummaryWithPath(SessionSummary):
    """Server-side only: keeps the absolute JSONL path for detail parsing."""
    filePath: str

    def without_path(self) -> SessionSummary:
        return SessionSummary(**self.model_dump(exclude={"filePath"}))


# ── Session detail models ──────────────────────────────────────────

class TokenUsage(BaseModel):
    inputTokens: int = 0
    outputTokens: int = 0
    cacheReadInputTokens: int = 0
    cacheCreationInputTokens: int = 0

    @property
    def total(self) -> int:
        return (
            self.inputTokens
            + self.outputTokens
            + self.cacheReadInputTokens
            + self.cacheCreationInputTokens
        )


class Turn(BaseModel):
    uuid: Optional[str] = None
    role: Literal["user", "assistant"]
    timestamp: str = ""
    model: Optional[str] = None
    text: str = ""
    toolCalls: list[str] = Field(default_factory=list)


class SkillInvocation(BaseModel):
    skill: str
    args: Optional[str] = None
    source: Literal["injected", "invoked"]
    timestamp: str = ""
    toolUseId: str


class Agent(BaseModel):
    toolUseId: str
    agentId: Optional[str] = None
    subagentType: str = ""
    description: str = ""
    timestamp: str = ""
    isBackground: bool = False
    # None = no linked sub-agent log found; [] = checked, none detected.
    skills: Optional[list[SkillInvocation]] = None
    tokens: Optional[TokenUsage] = None


class SessionErrorEvent(BaseModel):
    timestamp: str = ""
    subtype: str = ""
    content: str = ""
    raw: dict = Field(default_factory=dict)


class ContextWindow(BaseModel):
    model: Optional[str] = None
    usedTokens: int = 0
    timestamp: str = ""


class SessionDetail(BaseModel):
    sessionId: str
    projectPath: str
    projectName: str
    branch: Optional[str] = None
    cwd: Optional[str] = None
    startedAt: str = ""
    lastActiveAt: str = ""
    durationMs: int = 0
    turns: list[Turn] = Field(default_factory=list)
    toolFrequency: dict[str, int] = Field(default_factory=dict)
    tokensByModel: dict[str, TokenUsage] = Field(default_factory=dict)
    agents: list[Agent] = Field(default_factory=list)
    errors: list[SessionErrorEvent] = Field(default_factory=list)
    contextWindow: Optional[ContextWindow] = None
    skippedLines: dict[str, int] = Field(default_factory=dict)


# ── Stats snapshot models (stats-cache.json) ───────────────────────

class DailyActivity(BaseModel):
    date: str
    messageCount: int = 0
    sessionCount: int = 0
    toolCallCount: int = 0


class DailyModelTokens(BaseModel):
    date: str
    tokensByModel: dict[str, int] = Field(default_factory=dict)


class ModelUsage(BaseModel):
    model_config = ConfigDict(extra="allow")

    inputTokens: int = 0
    outputTokens: int = 0
    cacheReadInputTokens: int = 0
    cacheCreationInputTokens: int = 0


class LongestSession(BaseModel):
    sessionId: str = ""
    duration: int = 0
    messageCount: int = 0
    timestamp: str = ""


class StatsCache(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: int
    lastComputedDate: str
    dailyActivity: list[DailyActivity] = Field(default_factory=list)
    dailyModelTokens: list[DailyModelTokens] = Field(default_factory=list)
    modelUsage: dict[str, ModelUsage] = Field(default_factory=dict)
    totalSessions: int = 0
    totalMessages: int = 0
    longestSession: LongestSession = Field(default_factory=LongestSession)
    firstSessionDate: Optional[str] = None
    hourCounts: dict[str, int] = Field(default_factory=dict)


# ── Analytics models ───────────────────────────────────────────────

class ProjectAnalytics(BaseModel):
    projectPath: str
    projectName: str
    sessionCount: int = 0
    messageCount: int = 0
    totalDurationMs: int = 0
    lastActiveAt: str = ""
    activeSessionCount: int = 0
    branches: list[str] = Field(default_factory=list)
