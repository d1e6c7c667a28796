"""Prompt templates for classification, generation, chat and live Q&A."""
from __future__ import annotations

SYSTEM_INSTRUCTION = """\
You are the Teach-Back Engine. Your goal is to turn complex medical instructions \
into clear, simple language that a patient can easily understand and act on.
- Use clear, culturally sensitive language appropriate for a 6th-8th-grade reading level.
- NEVER invent clinical facts or information not present in the provided text. If a \
detail is ambiguous or missing, state that you cannot confirm it.
- Your entire output MUST be a single, valid JSON object that strictly adheres to the \
provided schema. Do not add any extra text or formatting outside of the JSON structure.
- Identify and highlight any "red-flag" phrases like "chest pain," "trouble breathing," \
"severe headache," etc., in the safety_flags.
- Create a quiz that tests the most critical actions or concepts the user needs to know.
- The remediation content should directly address common misunderstandings related to \
the quiz questions."""

CLASSIFICATION_PROMPT = """\
Classify the following medical document into exactly one category:

- prescription: medication label or prescription instructions
- eob: insurance Explanation of Benefits or medical bill
- prior_auth: prior authorization request, approval or denial
- discharge: hospital or clinic discharge instructions
- lab: laboratory test result
- unknown: none of the above, or you are not sure

Prefer "unknown" over a low-confidence guess. Report your confidence from 0 to 1, \
up to 3 alternative categories with scores, and, if the category is "unknown", \
short reasons why.

Respond in this exact JSON format only, with no other text:
{{
  "context": "prescription",
  "confidence": 0.9,
  "top_k": [{{"label": "discharge", "score": 0.1}}],
  "unknown_reasons": []
}}

{source_section}"""

GENERATION_PROMPT = """\
Please process the following medical instructions.

The document category is "{category}". Treat this as authoritative: fill ONLY the \
"{category}" branch of the "domain" object and leave every other branch out.
{category_hint}

Write 3 to 5 quiz questions. Each question has exactly one correct answer and 2 or 3 \
distractors; a distractor must never repeat the correct answer.

{source_section}"""

CATEGORY_HINTS = {
    "prescription": "Extract the dose, route, frequency, timing, what to do about a missed dose, "
                    "common side effects and interaction warnings.",
    "eob": "Extract the claim id, service date, billed and allowed amounts, deductible, copay, "
           "coinsurance, why anything was not covered, the appeal window in days and next steps.",
    "prior_auth": "Extract the authorization status, missing items, clinical criteria, the deadline, "
                  "a checklist for the patient and a short addendum the provider could send.",
    "discharge": "Extract follow-up appointments, medication changes, when to call the doctor "
                 "and activity restrictions.",
    "lab": "Extract the test name, value, unit, reference range, a plain interpretation and next steps.",
    "unknown": "This is general mode: extract the key points, an action checklist and "
               "questions the patient could ask their provider.",
}

TEXT_SOURCE = "---\n{text}\n---"
IMAGE_SOURCE = "The document is provided as the attached image."

RETRY_DIRECTIVE = (
    "The previous attempt failed to produce valid JSON. Please ensure your output is a "
    "single, valid JSON object matching the schema, with no additional text or explanations."
)

CHAT_SYSTEM_INSTRUCTION = """\
You are a friendly helper inside the Teach-Back Engine. Patients ask you about their \
medical instructions: what a term means, or how to say a sentence more simply.
- Use plain language at a 6th-8th-grade reading level and keep answers short.
- Do not give a diagnosis or change any instruction from their care team; suggest \
asking their doctor or pharmacist when unsure.
- When the user asks what a single word or term means, reply with ONLY this JSON \
object and nothing else:
{"isDefinition": true, "term": "<the term>", "definition": "<a one or two sentence plain definition>"}
- For anything else reply in plain text."""

LIVE_SYSTEM_INSTRUCTION = """\
You are a friendly voice assistant in the Teach-Back Engine. Answer spoken questions \
about medical instructions in short, simple sentences a patient can follow. Never \
invent clinical facts; if you are not sure, say so and suggest asking their care team."""

TRANSCRIBE_PROMPT = "Transcribe the following audio. The speaker's language is {language}."

TRANSLATE_PROMPT = "Translate the following text to {language}:\n\n---\n{text}\n---"


def format_source(text: str | None) -> str:
    if text is None:
        return IMAGE_SOURCE
    return TEXT_SOURCE.format(text=text)
