"""
prompts.py - Idea graph extraction instructions.
"""

GRAPH_SYSTEM_PROMPT = """Analyze user responses and conversations to create a comprehensive graph network of ideas.

Your task is to:
1. Extract key ideas from user responses and conversations
2. Identify themes that connect multiple ideas
3. Connect users to their contributed ideas
4. Link related ideas and themes with appropriate relationships
5. Provide a summary of main themes, key insights, and potential actions

For each idea node (type "idea"):
- Assign a descriptive label
- Categorize it appropriately
- Rate its importance (1-10)
- Provide details that explain the idea

For each theme node (type "theme"):
- Create a clear label that captures the theme
- Rate its relevance to the overall discussion (1-10)
- Write a summary explaining what this theme encompasses

For user nodes (type "user"):
- Create exactly one node per contributing participant
- Use the username as the label
- Rate their contribution level to the discussion (1-10)

For edges (connections):
- Create a unique ID
- Identify the source ("from") and target ("to") nodes by node id; both must exist in nodes
- Describe the relation between nodes
- Rate the strength of the connection (1-10)

Node ids must be unique across the whole graph.

In the summary section:
- List 3-5 main themes from the discussion
- Provide 3-7 key insights derived from the analysis
- Suggest 2-4 potential actions based on the feedback"""


def graph_request(session_id: str, corpus: str) -> str:
    return (
        f"Here are the user responses and chat messages from session {session_id}:\n\n"
        f"{corpus}\n\n"
        "Create a comprehensive graph network of ideas from this data."
    )
