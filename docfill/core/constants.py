# Placeholder types the detector may assign. Anything else is coerced to "text".
PLACEHOLDER_TYPES = (
    "text",
    "number",
    "currency",
    "date",
    "email",
    "address",
    "signature",
)

# Intent labels, in the order the classifier prompt lists them
QUERY_TYPES = (
    "answer",
    "question",
    "clarification",
    "correction",
    "skip",
    "general",
)

DEFAULT_QUERY_TYPE = "answer"

# Rough raw-key -> placeholder-key aliases the model tends to produce
KEY_SYNONYMS = {
    "company": "company_name",
    "company_name": "company_name",
    "founder_name": "founder",
    "founder": "founder",
}

# Cue words for "the user is asking about the question I just asked"
CURRENT_QUESTION_CUES = ("what", "that", "this", "mean")

COMPLETION_MESSAGE = "✅ All information collected! Your document is ready."
ALL_FILLED_QUESTION = "All placeholders are filled. I can generate your completed document now."
ALREADY_COMPLETE_MESSAGE = "This document is already complete. You can download it now."
CLARIFY_FALLBACK = "I need a bit more information. Could you clarify?"
ACK_FALLBACK = "I've noted that."
CORRECTION_ACK = "I've updated that information."
EXPLAIN_FALLBACK = "I'm not sure how to answer that."
CONTINUE_OFFER = "Would you like to continue filling out the document?"
RESUME_SKIPPED_INTRO = "Now let's finish the remaining fields:"
