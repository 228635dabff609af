from enum import Enum


class EmbedTask(str, Enum):
    """Intent of an embedding request.

    Retrieval-tuned models embed queries and documents asymmetrically, so
    every request states which side it is on.
    """

    QUERY = "query"
    DOCUMENT = "document"
