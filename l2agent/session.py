"""
Conversation session: the ordered message log and every provider call.

The session replays its whole history on each send because providers keep
no state between calls. Nothing trims the history automatically.
"""

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from . import prompts
from .providers.base import AIMessage, AIResponse, NoProviderSelectedError, as_message, now_ms
from .providers.manager import ProviderManager

logger = logging.getLogger(__name__)

BULLET_RE = re.compile(r"^[-*•]\s*")


@dataclass
class CodeAnalysis:
    suggestions: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    security_issues: List[str] = field(default_factory=list)
    performance_tips: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeAnalysis":
        def strings(key):
            value = data.get(key)
            if not isinstance(value, list):
                return []
            return [str(item) for item in value]

        return cls(
            suggestions=strings("suggestions"),
            issues=strings("issues"),
            improvements=strings("improvements"),
            security_issues=strings("securityIssues"),
            performance_tips=strings("performanceTips"),
        )

    def to_dict(self) -> Dict[str, List[str]]:
        data = asdict(self)
        data["securityIssues"] = data.pop("security_issues")
        data["performanceTips"] = data.pop("performance_tips")
        return data


class ConversationSession:
    """Append-only conversation bound to the manager's current provider."""

    def __init__(self, manager: Optional[ProviderManager] = None, history: Iterable[Any] = ()):
        self.manager = manager if manager is not None else ProviderManager()
        self._history: List[AIMessage] = [as_message(m) for m in history]

    @property
    def history(self) -> List[AIMessage]:
        """A copy of the conversation; mutating it does not touch the session."""
        return list(self._history)

    def __len__(self):
        return len(self._history)

    def send(self, text: str, context: Optional[Dict[str, Any]] = None) -> AIResponse:
        """
        Append a user message, replay the whole history to the current
        provider and append its answer.

        Raises:
            NoProviderSelectedError: no provider is selected, or the selected
                one is not configured. Nothing is appended in that case.
            ProviderError: whatever the provider raised. The user message
                stays in the history.
        """
        provider = self.manager.current
        if provider is None or not provider.is_configured():
            raise NoProviderSelectedError("No AI provider configured")

        context = dict(context or {})
        self._history.append(AIMessage("user", text, context=context, timestamp=now_ms()))

        response = provider.send_message(list(self._history), context)

        self._history.append(
            AIMessage("assistant", response.content, context={}, timestamp=now_ms())
        )
        logger.debug("%s answered with %d characters", provider.get_name(), len(response.content))
        return response

    def clear(self):
        self._history = []

    def export_snapshot(self) -> str:
        return json.dumps([msg.to_dict() for msg in self._history], indent=2)

    def import_snapshot(self, snapshot: Union[str, List[Any]]):
        """Replace the history wholesale with a snapshot (JSON text or a list)."""
        if isinstance(snapshot, str):
            snapshot = json.loads(snapshot)
        if not isinstance(snapshot, list):
            raise ValueError("Conversation snapshot must be a list of messages")
        self._history = [as_message(m) for m in snapshot]

    # Code-assistance helpers

    def chat_with_context(self, message: str, context: Dict[str, Any]) -> AIResponse:
        return self.send(prompts.contextual_prompt(message, context), context)

    def analyze_code(self, code: str, file_path: str) -> CodeAnalysis:
        """Ask for a JSON review; an unparseable answer yields an empty analysis."""
        response = self.send(
            prompts.ANALYZE_CODE.format(file_path=file_path, code=code),
            {"filePath": file_path, "selectedCode": code, "taskType": "code_review"},
        )
        try:
            data = json.loads(response.content)
        except ValueError:
            logger.debug("Code analysis answer was not JSON")
            return CodeAnalysis()
        if not isinstance(data, dict):
            return CodeAnalysis()
        return CodeAnalysis.from_dict(data)

    def generate_code(
        self,
        prompt: str,
        language: str,
        framework: Optional[str] = None,
        style: str = "functional",
        include_tests: bool = False,
        include_comments: bool = False,
    ) -> str:
        requirements = [f"- Language: {language}"]
        if framework:
            requirements.append(f"- Framework: {framework}")
        requirements.append(f"- Style: {style}")
        if include_tests:
            requirements.append("- Include unit tests")
        if include_comments:
            requirements.append("- Include detailed comments")

        response = self.send(
            prompts.GENERATE_CODE.format(prompt=prompt, requirements="\n".join(requirements)),
            {"language": language, "taskType": "code_completion"},
        )
        return response.content

    def refactor_code(self, code: str, file_path: str, refactor_type: str) -> str:
        if refactor_type not in prompts.REFACTOR_INSTRUCTIONS:
            raise ValueError(f"Unknown refactor type: {refactor_type}")

        response = self.send(
            prompts.REFACTOR_CODE.format(
                instruction=prompts.REFACTOR_INSTRUCTIONS[refactor_type],
                file_path=file_path,
                code=code,
            ),
            {"filePath": file_path, "selectedCode": code, "taskType": "refactor"},
        )
        return response.content

    def explain_code(self, code: str, file_path: str) -> str:
        response = self.send(
            prompts.EXPLAIN_CODE.format(file_path=file_path, code=code),
            {"filePath": file_path, "selectedCode": code, "taskType": "explain"},
        )
        return response.content

    def debug_code(self, code: str, file_path: str, error_message: Optional[str] = None) -> str:
        error = f"Error: {error_message}\n" if error_message else ""
        response = self.send(
            prompts.DEBUG_CODE.format(file_path=file_path, code=code, error=error),
            {"filePath": file_path, "selectedCode": code, "taskType": "debug"},
        )
        return response.content

    def generate_tests(self, code: str, file_path: str, test_framework: Optional[str] = None) -> str:
        framework = f"Test Framework: {test_framework}\n" if test_framework else ""
        response = self.send(
            prompts.GENERATE_TESTS.format(file_path=file_path, code=code, framework=framework),
            {"filePath": file_path, "selectedCode": code, "taskType": "test_generation"},
        )
        return response.content

    def suggest_improvements(self, code: str, file_path: str) -> List[str]:
        response = self.send(
            prompts.SUGGEST_IMPROVEMENTS.format(file_path=file_path, code=code),
            {"filePath": file_path, "selectedCode": code, "taskType": "improvements"},
        )
        lines = (line.strip() for line in response.content.split("\n"))
        return [BULLET_RE.sub("", line).strip() for line in lines if line]
