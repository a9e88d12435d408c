# -------------------------------------------------------------- #
# Extraction Prompts
# -------------------------------------------------------------- #

EXTRACTION_SYSTEM_PROMPT = (
    "You are an AI assistant specialized in analyzing meeting transcripts. "
    "Always respond with valid JSON."
)

EXTRACTION_PROMPT_TEMPLATE = """Analyze the following meeting transcript and extract:
1. Main topics discussed (3-7 key themes)
2. Action items (specific tasks assigned with who should do them)
3. Key decisions made
4. Overall sentiment (positive, neutral, or negative)

Transcript:
{transcript}

Return your response in the following JSON format:
{{
  "topics": ["topic1", "topic2", ...],
  "action_items": ["action1", "action2", ...],
  "decisions": ["decision1", "decision2", ...],
  "sentiment": "positive/neutral/negative"
}}"""

SUMMARY_SYSTEM_PROMPT = (
    "You are an AI assistant specialized in summarizing meeting transcripts "
    "concisely and accurately."
)

SUMMARY_PROMPT_TEMPLATE = """Summarize the following meeting transcript in 2-3 concise sentences. Focus on the main purpose of the meeting and key outcomes.

Transcript:
{transcript}"""

INSIGHTS_SYSTEM_PROMPT = (
    "You are an AI assistant specialized in analyzing meetings and extracting strategic "
    "insights. Always respond with valid JSON."
)

INSIGHTS_PROMPT_TEMPLATE = """Analyze the following meeting transcript and generate 3-5 key insights. These should be strategic observations, important patterns, or critical takeaways that provide value beyond surface-level information.

Transcript:
{transcript}

Return your response as a JSON array of strings:
{{
  "insights": ["insight1", "insight2", ...]
}}"""

# Generation settings
EXTRACTION_TEMPERATURE = 0.3
SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 200
INSIGHTS_TEMPERATURE = 0.4
