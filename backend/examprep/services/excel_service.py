import pandas as pd
import json


REQUIRED_COLUMNS = [
    "question_text",
    "question_type",
    "options(json)",
    "correct_option",
    "marks",
    "negative_marks",
]


def parse_excel(file):
    df = pd.read_excel(file)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        # Raise KeyError so upstream router can return a HTTP 400 with a helpful message
        raise KeyError(missing[0])

    questions = []

    def get_json_value(value):
        return json.loads(value) if pd.notna(value) and str(value).strip() else []

    def get_number(value, default):
        return float(value) if pd.notna(value) else default

    for _, row in df.iterrows():
        correct = row.get("correct_option")
        q = {
            "question_text": str(row["question_text"]).strip() if pd.notna(row["question_text"]) else "",
            "question_type": str(row["question_type"]).strip().lower() if pd.notna(row["question_type"]) else "mcq",
            "options": get_json_value(row["options(json)"]),
            "correct_option": int(correct) if pd.notna(correct) else None,
            "marks": get_number(row.get("marks"), 4.0),
            "negative_marks": get_number(row.get("negative_marks"), 0.0),
            "explanation": row.get("explanation") if pd.notna(row.get("explanation")) else None,
        }

        questions.append(q)

    return questions
