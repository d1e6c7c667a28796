"""Canned content for the guided tour; no backend call ever produces it."""
from __future__ import annotations

from teachback.models import (
    Alternate,
    ChatTurn,
    ClassificationResult,
    DischargeDetails,
    QAItem,
    Remediation,
    SafetyFlags,
    TeachBackContent,
)

SAMPLE_INPUT_TEXT = """\
Patient: John Doe, DOB: 01/15/1965
Discharge Instructions for Atrial Fibrillation

Medication:
- Eliquis (apixaban) 5 mg tablet. Take one tablet by mouth twice daily. This is an \
anticoagulant to prevent stroke. Do not stop taking this without consulting your cardiologist.
- Metoprolol Succinate ER 50 mg tablet. Take one tablet by mouth once daily. This is a \
beta-blocker to control your heart rate.

Follow-up:
- Schedule an appointment with Dr. Smith (Cardiology) in 4 weeks.
- Obtain an outpatient lab draw for a basic metabolic panel (BMP) and complete blood \
count (CBC) in 2 weeks.

Warning Signs:
- Seek immediate medical attention for signs of major bleeding, such as red or black \
tarry stools, severe headache, or coughing up blood.
- Contact our office if you experience increased shortness of breath, dizziness, \
fainting, or chest pain.
"""

SIMPLIFIED_TEXT = """\
Here is a simpler way to understand your instructions for Atrial Fibrillation.

**Your Medicines:**

*   **Eliquis (apixaban) 5 mg:** Take one pill two times every day. This is a blood \
thinner that helps prevent strokes. It is very important that you do not stop taking \
this medicine unless your heart doctor tells you to.
*   **Metoprolol Succinate ER 50 mg:** Take one pill one time every day. This medicine \
helps keep your heart from beating too fast.

**Next Steps:**

*   You need to see your heart doctor, Dr. Smith, in about one month.
*   You also need to get some blood tests done in two weeks. These are called a BMP and a CBC.

**When to Get Help Right Away:**

You must get help immediately if you see signs of serious bleeding. This includes:

*   Your stool is red or looks like black tar.
*   You have a very bad headache.
*   You cough up blood.

Also, please call the doctor's office if you feel more out of breath, dizzy, feel like \
you might faint, or have chest pain."""

DEMO_CLASSIFICATION = ClassificationResult(
    context="discharge",
    confidence=0.95,
    alternates=[Alternate("prescription", 0.35), Alternate("lab", 0.1)],
    unknown_reasons=[],
)


def demo_content() -> TeachBackContent:
    """A fresh copy each time, so demo sessions never share mutable state."""
    return TeachBackContent(
        context="discharge",
        simplified_text=SIMPLIFIED_TEXT,
        reading_grade_after=7,
        qa_items=[
            QAItem(
                question="How many times a day should you take your Eliquis (apixaban) pill?",
                correct_answer="Twice a day",
                distractors=["Once a day", "Only when my heart feels fast"],
                rationale_correct="The instructions clearly state to take one tablet twice daily. "
                                  "This is crucial for preventing strokes.",
                rationale_incorrect="Taking it once a day is incorrect and would not be effective. "
                                    "You must take it every day as scheduled, not just based on symptoms.",
                concept_tag="dosing",
            ),
            QAItem(
                question="Which of these is a reason to get medical help immediately?",
                correct_answer="Coughing up blood",
                distractors=["You need to schedule a follow-up appointment", "Feeling a little tired"],
                rationale_correct="Coughing up blood is a sign of major bleeding, which is a serious "
                                  "side effect of Eliquis and requires immediate attention.",
                rationale_incorrect="Scheduling an appointment is a normal follow-up action, not an "
                                    "emergency. Feeling tired is not a reason for immediate help "
                                    "unless it's severe.",
                concept_tag="warning_signs",
            ),
            QAItem(
                question="When should you get your blood tests done?",
                correct_answer="In 2 weeks",
                distractors=["In 4 weeks, at your follow-up appointment", "You don't need any blood tests"],
                rationale_correct="The instructions specify getting the lab work done in 2 weeks, "
                                  "which is before your 4-week follow-up appointment.",
                rationale_incorrect="The appointment is in 4 weeks, but the tests are needed sooner. "
                                    "The instructions explicitly state that blood tests are required.",
                concept_tag="follow_up",
            ),
        ],
        remediation=Remediation(
            if_wrong="Let's review the key points. It's very important to take your medicine exactly "
                     "as prescribed and to know when to seek help for serious problems.",
            examples=[
                "For example, taking Eliquis twice a day is not optional; it's what protects you from a stroke.",
                "A sign of bleeding, like red or black stool, is an emergency. A regular follow-up is not an emergency.",
            ],
        ),
        safety_flags=SafetyFlags(
            urgent_contact=True,
            contraindication_mentioned=False,
            red_flags=[
                "major bleeding",
                "red or black tarry stools",
                "severe headache",
                "coughing up blood",
                "shortness of breath",
                "dizziness",
                "fainting",
                "chest pain",
            ],
        ),
        domain_details=DischargeDetails(
            followups=[
                "Cardiology appointment with Dr. Smith in 4 weeks",
                "Blood tests (BMP and CBC) in 2 weeks",
            ],
            med_changes=[
                "Eliquis (apixaban) 5 mg twice daily",
                "Metoprolol Succinate ER 50 mg once daily",
            ],
            when_to_call=[
                "Red or black tarry stools, severe headache or coughing up blood: get help now",
                "More shortness of breath, dizziness, fainting or chest pain: call the office",
            ],
            activity_restrictions=[],
        ),
    )


DEMO_CHAT_TURNS = (
    ChatTurn("model", "Hello! This is a demo of the Chat Helper. I can help explain medical terms."),
    ChatTurn("user", 'What does "anticoagulant" mean?'),
    ChatTurn(
        "model",
        'An anticoagulant is a type of medicine often called a "blood thinner." It helps prevent '
        "blood clots from forming, which is very important for conditions like Atrial Fibrillation "
        "to reduce the risk of a stroke.",
    ),
)

DEMO_LIVE_TRANSCRIPT = (
    ChatTurn("user", "Can you remind me what a beta-blocker does?"),
    ChatTurn(
        "model",
        "Of course. A beta-blocker is a medication that helps your heart beat more slowly and with "
        "less force. In your case, it's used to help control your heart rate.",
    ),
)
