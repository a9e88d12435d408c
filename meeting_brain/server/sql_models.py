import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

# -------------------------------------------------------------- #
# SQL Database Data Models
# -------------------------------------------------------------- #

Base = declarative_base()


class Sentiment(enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ChildRowKind(enum.Enum):
    ACTION_ITEM = "action_item"
    DECISION = "decision"


# -------------------------------------------------------------- #
# Models
# -------------------------------------------------------------- #


class TranscriptModel(Base):
    """
    ID = Relational surrogate id, join key for every linked row
    Transcript ID = Caller-supplied business id, unique across both stores
    Title = Meeting title
    Occurred At = When the meeting took place (UTC)
    Duration Minutes = Meeting length
    Transcript Text = Raw transcript
    Metadata = Free-form key/value map supplied by the caller
    Sentiment = positive | neutral | negative
    Summary = 2-3 sentence synopsis
    Key Insights = Ordered list of strategic observations
    Embedding Indexed = True once the vector record has been written
    Created At = Timestamp when the row was inserted
    """

    __tablename__ = "transcripts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transcript_id = Column(String(255), nullable=False, unique=True, index=True)
    title = Column(String(500), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = Column(Float, nullable=False)
    transcript_text = Column(Text, nullable=False)
    meeting_metadata = Column(JSON, nullable=False, default=dict)
    sentiment = Column(String(16), nullable=False, default=Sentiment.NEUTRAL.value)
    summary = Column(Text, nullable=True)
    key_insights = Column(JSON, nullable=False, default=list)
    embedding_indexed = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ParticipantModel(Base):
    """
    ID = Participant ID
    Email = Unique identity of the participant
    Name = Display name, last write wins
    """

    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)


class TopicModel(Base):
    """
    ID = Topic ID
    Name = Topic name as extracted, case-sensitive
    """

    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True, index=True)


class TranscriptParticipantModel(Base):
    """
    Transcript DB ID = Foreign Key to transcripts.id
    Participant ID = Foreign Key to participants.id
    Role = Role of the participant in that meeting
    """

    __tablename__ = "transcript_participants"

    transcript_db_id = Column(
        Integer, ForeignKey("transcripts.id", ondelete="CASCADE"), primary_key=True
    )
    participant_id = Column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    role = Column(String(100), nullable=False, default="participant")


class TranscriptTopicModel(Base):
    """
    Transcript DB ID = Foreign Key to transcripts.id
    Topic ID = Foreign Key to topics.id
    """

    __tablename__ = "transcript_topics"

    transcript_db_id = Column(
        Integer, ForeignKey("transcripts.id", ondelete="CASCADE"), primary_key=True
    )
    topic_id = Column(
        Integer, ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True, index=True
    )


class ActionItemModel(Base):
    """
    ID = Action Item ID
    Transcript DB ID = Foreign Key to the owning transcript
    Description = Task text
    Ordinal = Position in the extractor's output
    Idempotency Key = sha256 of transcript id, kind, ordinal and description
    """

    __tablename__ = "action_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transcript_db_id = Column(
        Integer, ForeignKey("transcripts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description = Column(Text, nullable=False)
    ordinal = Column(Integer, nullable=False)
    idempotency_key = Column(String(64), nullable=False, unique=True)


class DecisionModel(Base):
    """
    ID = Decision ID
    Transcript DB ID = Foreign Key to the owning transcript
    Description = Decision text
    Ordinal = Position in the extractor's output
    Idempotency Key = sha256 of transcript id, kind, ordinal and description
    """

    __tablename__ = "decisions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transcript_db_id = Column(
        Integer, ForeignKey("transcripts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description = Column(Text, nullable=False)
    ordinal = Column(Integer, nullable=False)
    idempotency_key = Column(String(64), nullable=False, unique=True)
