"""
api/sample_sets.py — built-in practice sets for the local in-memory store
"""

from practice_cbt.models.quiz_model import Option, Question, QuizSet

# (prompt, explanation, [options], correct option index)
_CSC201 = [
    (
        "Which data structure gives O(1) average lookup by key?",
        "Hash tables map keys to buckets directly.",
        ["Linked list", "Hash table", "Binary heap", "Stack"],
        1,
    ),
    (
        "What is the time complexity of binary search on a sorted array?",
        "Each step halves the search space.",
        ["O(n)", "O(n log n)", "O(log n)", "O(1)"],
        2,
    ),
    (
        "Which traversal visits a binary search tree's keys in sorted order?",
        "In-order visits left subtree, node, right subtree.",
        ["Pre-order", "In-order", "Post-order", "Level-order"],
        1,
    ),
    (
        "A queue processes elements in which order?",
        "First in, first out.",
        ["LIFO", "FIFO", "Random", "By priority"],
        1,
    ),
    (
        "Which sorting algorithm is stable in its standard form?",
        "Merge sort preserves the order of equal keys.",
        ["Quick sort", "Heap sort", "Merge sort", "Selection sort"],
        2,
    ),
]

_GST111 = [
    (
        "Which of these is a primary source?",
        "Primary sources are first-hand records.",
        ["An encyclopedia entry", "A diary", "A textbook summary", "A review article"],
        1,
    ),
    (
        "Plagiarism is best avoided by:",
        "Cite every source you draw from.",
        ["Paraphrasing without citing", "Citing sources", "Using synonyms", "Shortening quotes"],
        1,
    ),
    (
        "An abstract appears:",
        "It summarizes the paper up front.",
        ["At the end", "Before the introduction", "In the appendix", "After references"],
        1,
    ),
]


def _build(set_id: str, rows: list) -> tuple[list[Question], list[Option]]:
    questions: list[Question] = []
    options: list[Option] = []
    for qi, (prompt, explanation, texts, correct) in enumerate(rows, start=1):
        qid = f"{set_id}-q{qi}"
        questions.append(Question(id=qid, set_id=set_id, prompt=prompt, explanation=explanation, position=qi))
        for oi, text in enumerate(texts):
            options.append(Option(
                id=f"{qid}-o{oi + 1}",
                question_id=qid,
                text=text,
                is_correct=(oi == correct),
                position=oi + 1,
            ))
    return questions, options


SAMPLE_SETS = [
    (
        QuizSet(
            id="csc201-ds",
            title="Data Structures Warm-up",
            description="Core data structure and complexity questions.",
            course_code="csc 201",
            level="200",
            time_limit_minutes=10,
        ),
        _CSC201,
    ),
    (
        QuizSet(
            id="gst111-rw",
            title="Research Writing Basics",
            description="Untimed practice on sources and citation.",
            course_code="GST 111",
            level="100",
            time_limit_minutes=None,
        ),
        _GST111,
    ),
]


def seed_sample_sets(store) -> None:
    for quiz_set, rows in SAMPLE_SETS:
        questions, options = _build(quiz_set.id, rows)
        store.add_set(quiz_set, questions, options)
