"""
Prompt templates for the code-assistance helpers on ConversationSession.
"""

ANALYZE_CODE = """Analyze the following code and provide a comprehensive review:

File: {file_path}
Code:
```
{code}
```

Please provide analysis in the following JSON format:
{{
  "suggestions": ["suggestion1", "suggestion2"],
  "issues": ["issue1", "issue2"],
  "improvements": ["improvement1", "improvement2"],
  "securityIssues": ["security1", "security2"],
  "performanceTips": ["tip1", "tip2"]
}}"""

GENERATE_CODE = """Generate code based on the following requirements:

{prompt}

Requirements:
{requirements}

Please provide only the code without explanations:"""

REFACTOR_INSTRUCTIONS = {
    "extract_method": "Extract the selected code into a separate method/function",
    "rename": "Suggest better names for variables, functions, and classes",
    "optimize": "Optimize the code for better performance and readability",
    "modernize": "Modernize the code using the latest language features and best practices",
}

REFACTOR_CODE = """{instruction}:

File: {file_path}
Code:
```
{code}
```

Please provide the refactored code:"""

EXPLAIN_CODE = """Explain this code in detail:

File: {file_path}
Code:
```
{code}
```

Please explain:
1. What the code does
2. How it works
3. Key concepts used
4. Potential improvements"""

DEBUG_CODE = """Debug this code:

File: {file_path}
Code:
```
{code}
```
{error}
Please help identify and fix the issue:"""

GENERATE_TESTS = """Generate comprehensive tests for this code:

File: {file_path}
Code:
```
{code}
```
{framework}
Please generate unit tests that cover:
1. Happy path scenarios
2. Edge cases
3. Error conditions
4. Boundary conditions"""

SUGGEST_IMPROVEMENTS = """Suggest improvements for this code:

File: {file_path}
Code:
```
{code}
```

Please provide specific, actionable improvements:"""


def fenced(code: str, language: str = "") -> str:
    return f"```{language}\n{code}\n```"


def contextual_prompt(message: str, context: dict) -> str:
    """Append the editor context (file, selection, tree, git status) to a chat message."""
    prompt = message
    language = context.get("language") or ""

    if context.get("filePath"):
        prompt += f"\n\nFile: {context['filePath']}"
    if context.get("selectedCode"):
        prompt += f"\n\nSelected code:\n{fenced(context['selectedCode'], language)}"
    if context.get("existingCode"):
        prompt += f"\n\nExisting code context:\n{fenced(context['existingCode'], language)}"
    if context.get("fileTree"):
        prompt += f"\n\nProject structure:\n{context['fileTree']}"
    if context.get("gitStatus"):
        prompt += f"\n\nGit status:\n{context['gitStatus']}"

    return prompt
