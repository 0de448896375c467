"""AnswerBox — a conversational answer engine with search-augmented chat."""

__version__ = "0.3.0"
