"""
Prompt templates for chunk summarisation and the three answer modes.

Keeping templates in a separate module makes them easy to iterate on
without touching generation logic.  Mode templates expose two slots,
{context} and {question}.
"""

# ---------------------------------------------------------------------------
# Ingestion: per-chunk summary
# ---------------------------------------------------------------------------

CHUNK_SUMMARY_PROMPT = "Summarize the following text:\n\n{chunk}\n:"

# ---------------------------------------------------------------------------
# extract
# ---------------------------------------------------------------------------

EXTRACT_TEMPLATE = """\
####
Context: {context}
####
Question: {question}
####
Provide a clear, prioritized list of the top features to focus on, with a brief explanation for each.
Limit the list to between 5 and 8 features. If fewer than 5 are found, include additional relevant
features to reach this minimum. Separate the feature title and feature description by a ":".
"""

EXTRACT_QUESTION = "Give me a list of features from the given context?"

# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------

SUMMARIZE_TEMPLATE = """\
You are an expert in summarizing complex documents. Your task is to create a clear,
concise, and informative summary from the given context.

Guidelines:
1. The summary should be brief, with a minimum of 50 lines and maximum of 70 lines.
2. Focus on the key points, major themes, and critical information.
3. Avoid unnecessary details or repetition.

####
Context: {context}
####
Question: {question}
####
Summary:
"""

SUMMARIZE_QUESTION = (
    "Provide a brief summary of the key points and insights from the provided context."
)

# ---------------------------------------------------------------------------
# question
# ---------------------------------------------------------------------------

QUESTION_FALLBACK = "I dont know, ask me something else."

QUESTION_TEMPLATE = """\
You are a Q and A assistant, answering to the user from the given context.
if you cannot generate a answer , respond with "{fallback}".
####
Context: {{context}}
####
Question: {{question}}
####
Answer:
""".format(fallback=QUESTION_FALLBACK)

# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------

DOCUMENT_SEPARATOR = "\n\n"
