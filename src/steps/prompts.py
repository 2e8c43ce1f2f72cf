"""
LLM prompt templates for planning, generation, and debugging.

These prompts are used by step functions to interact with the LLM.
"""

PROMPT_TOKEN_INFO = """\
I need to complete the following task: "{prompt}". What is the token limit for \
this request and how many steps would you recommend to complete it? Please \
respond in JSON format with "tokenLimit" and "steps" fields."""

PROMPT_CONTINUE_STEP = """\
Continue implementing the solution for: "{prompt}". This is step {step} of \
{total_steps}. Here's what we have so far:

{code}

Please add the next part without repeating the existing code."""

PROMPT_FINAL_DEBUG = """\
Debug this final code and explain any potential issues or improvements:

{code}"""

PROMPT_DEBUG_REQUEST = """\
Please debug the following code:

{code}

Analyze for issues, potential bugs, and suggest improvements while maintaining \
the existing system structure."""

# Structured workflow

PROMPT_THINK = """\
{prompt}

Think about this request and break it down into logical steps based on token limits."""

PROMPT_CODE_FIRST = """\
{prompt}

Based on the analysis: {analysis}

Implement only the first phase of this request."""

PROMPT_CODE_NEXT = """\
{prompt}

Based on the analysis: {analysis}

Here's what we have so far:

{code}

Now implement phase {step} of the request."""

PROMPT_WORKFLOW_DEBUG = """\
Debug this final code while maintaining the existing system structure:

{code}"""

# Vector context

VECTOR_CONTEXT_HEADER = "Here are some relevant code examples that might help:"

VECTOR_CONTEXT_EXAMPLE = "Example {index} (similarity: {similarity}):\n{content}"

# Role preambles, prepended to every outgoing message of that role

ROLE_PREAMBLES: dict[str, str] = {
    "chat": (
        "As a helpful assistant, respond to the following request with clear "
        "explanations. If the user asks about coding, explain the approach you "
        "would take:"
    ),
    "think": (
        "Think step by step about this problem. Break down the request into "
        "logical phases based on token limits. Each phase should use "
        "approximately 75% of the available tokens. Explain your reasoning "
        "process for each phase and how they connect:"
    ),
    "code": (
        "Generate clean, efficient, and well-documented code for the following "
        "request. Follow SOLID principles and design patterns. Ensure the code "
        "is production-ready:"
    ),
    "debug": (
        "As a code debugging assistant, analyze the following code for bugs, "
        "inefficiencies, and potential improvements. Maintain the existing "
        "system structure and architecture while suggesting improvements:"
    ),
}


def format_for_role(
    message: str,
    role: str,
    model_name: str = "",
    system_prompt: str = "",
) -> str:
    """
    Wrap a message with the system prompt and the role preamble.

    Query-mode messages (planner meta-prompts) go out untouched. Without an
    active model the preamble is skipped and only the system prompt applies.
    """
    if role == "query":
        return message

    formatted = message
    if system_prompt:
        formatted = f"{system_prompt}\n\n{formatted}"

    preamble = ROLE_PREAMBLES.get(role)
    if model_name and preamble:
        formatted = f"{preamble}\n\n{formatted}"

    return formatted
