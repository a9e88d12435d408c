from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, delete, func, or_, select, update

if TYPE_CHECKING:
    from meeting_brain.context import Context
    from meeting_brain.schemas import IngestRequest, ParticipantInput
    from meeting_brain.server.services import SQLTransaction

from meeting_brain.errors import DuplicateTranscriptError, TranscriptNotFoundError
from meeting_brain.server.db_models import KeyInsightsList
from meeting_brain.server.sql_models import (
    ActionItemModel,
    ChildRowKind,
    DecisionModel,
    ParticipantModel,
    TopicModel,
    TranscriptModel,
    TranscriptParticipantModel,
    TranscriptTopicModel,
)
from meeting_brain.services.manager import Manager
from meeting_brain.utils import (
    SENTIMENT_SCORES,
    as_utc,
    child_row_idempotency_key,
    get_current_timestamp_utc,
    isoformat_or_none,
)

CHILD_ROW_MODELS = {
    ChildRowKind.ACTION_ITEM: ActionItemModel,
    ChildRowKind.DECISION: DecisionModel,
}

# -------------------------------------------------------------- #
# Transcript SQL Manager Service
# -------------------------------------------------------------- #


class TranscriptSQLManagerService(Manager):
    """
    Relational access layer for transcripts and their linked entities.

    Writes for one transcript go through a single transaction. Participants
    and topics are upserted on their natural keys, link rows and child rows
    are inserted with on-conflict-do-nothing so replays never duplicate.
    """

    def __init__(self, context: Context):
        super().__init__(context)

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services):
        await super().on_start(services)
        await self.services.logging_service.info("TranscriptSQLManagerService initialized")

    async def on_close(self):
        await self.services.logging_service.info("TranscriptSQLManagerService closed")

    @property
    def sql(self):
        return self.server.sql_client

    # -------------------------------------------------------------- #
    # Write Path
    # -------------------------------------------------------------- #

    async def persist_ingestion(self, request: IngestRequest, extracted: dict[str, Any]) -> int:
        """
        Insert a transcript with all its linked rows in one transaction.

        Args:
            request: Validated ingestion request
            extracted: topics, action_items, decisions, sentiment, summary, key_insights

        Returns:
            Relational surrogate id of the new transcript

        Raises:
            DuplicateTranscriptError: transcript_id already exists (concurrent first ingestion)
        """
        key_insights = KeyInsightsList.model_validate(extracted["key_insights"]).root

        async with self.sql.transaction() as tx:
            stmt = (
                self.sql.insert(TranscriptModel)
                .values(
                    transcript_id=request.transcript_id,
                    title=request.title,
                    occurred_at=request.occurred_at,
                    duration_minutes=request.duration_minutes,
                    transcript_text=request.transcript,
                    meeting_metadata=request.metadata,
                    sentiment=extracted["sentiment"],
                    summary=extracted["summary"],
                    key_insights=key_insights,
                    embedding_indexed=False,
                    created_at=get_current_timestamp_utc(),
                )
                .on_conflict_do_nothing(index_elements=["transcript_id"])
                .returning(TranscriptModel.id)
            )
            rows = await tx.execute(stmt)
            if not rows:
                raise DuplicateTranscriptError(request.transcript_id)
            db_id = rows[0]["id"]

            await self._upsert_participants(tx, db_id, request.participants)
            await self._upsert_topics(tx, db_id, extracted["topics"])
            await self._insert_child_rows(
                tx,
                db_id,
                request.transcript_id,
                ChildRowKind.ACTION_ITEM,
                extracted["action_items"],
            )
            await self._insert_child_rows(
                tx, db_id, request.transcript_id, ChildRowKind.DECISION, extracted["decisions"]
            )

        await self.services.logging_service.info(
            f"Persisted transcript {request.transcript_id} (db id {db_id}) with "
            f"{len(request.participants)} participants, {len(extracted['topics'])} topics"
        )
        return db_id

    async def reapply_participants(self, db_id: int, participants: list[ParticipantInput]) -> None:
        """Re-run participant upserts and links for an existing transcript in one transaction."""
        async with self.sql.transaction() as tx:
            await self._upsert_participants(tx, db_id, participants)

    async def mark_embedding_indexed(self, transcript_id: str) -> None:
        stmt = (
            update(TranscriptModel)
            .where(TranscriptModel.transcript_id == transcript_id)
            .values(embedding_indexed=True)
        )
        await self.sql.execute(stmt)
        await self.services.logging_service.debug(f"Marked transcript {transcript_id} as indexed")

    async def delete_transcript(self, transcript_id: str) -> bool:
        """
        Delete a transcript row. Links, action items and decisions cascade.

        Returns:
            True if a row was deleted
        """
        stmt = (
            delete(TranscriptModel)
            .where(TranscriptModel.transcript_id == transcript_id)
            .returning(TranscriptModel.id)
        )
        rows = await self.sql.execute(stmt)
        if rows:
            await self.services.logging_service.info(f"Deleted transcript {transcript_id}")
        return bool(rows)

    async def _upsert_participants(
        self, tx: SQLTransaction, db_id: int, participants: list[ParticipantInput]
    ) -> None:
        # One row per email per statement, last name wins
        by_email: dict[str, ParticipantInput] = {}
        for participant in participants:
            by_email[participant.email] = participant
        if not by_email:
            return

        # Key order: every transaction locks participant rows in the same sequence
        ordered = sorted(by_email.items())
        stmt = self.sql.insert(ParticipantModel).values(
            [{"email": email, "name": p.name} for email, p in ordered]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["email"], set_={"name": stmt.excluded.name}
        ).returning(ParticipantModel.id, ParticipantModel.email)
        rows = await tx.execute(stmt)
        participant_ids = {row["email"]: row["id"] for row in rows}

        link_stmt = (
            self.sql.insert(TranscriptParticipantModel)
            .values(
                [
                    {
                        "transcript_db_id": db_id,
                        "participant_id": participant_ids[email],
                        "role": p.role,
                    }
                    for email, p in ordered
                ]
            )
            .on_conflict_do_nothing(index_elements=["transcript_db_id", "participant_id"])
        )
        await tx.execute(link_stmt)

    async def _upsert_topics(self, tx: SQLTransaction, db_id: int, topics: list[str]) -> None:
        names = sorted(set(topics))
        if not names:
            return

        stmt = self.sql.insert(TopicModel).values([{"name": name} for name in names])
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"], set_={"name": stmt.excluded.name}
        ).returning(TopicModel.id)
        rows = await tx.execute(stmt)

        link_stmt = (
            self.sql.insert(TranscriptTopicModel)
            .values([{"transcript_db_id": db_id, "topic_id": row["id"]} for row in rows])
            .on_conflict_do_nothing(index_elements=["transcript_db_id", "topic_id"])
        )
        await tx.execute(link_stmt)

    async def _insert_child_rows(
        self,
        tx: SQLTransaction,
        db_id: int,
        transcript_id: str,
        kind: ChildRowKind,
        descriptions: list[str],
    ) -> None:
        if not descriptions:
            return

        model = CHILD_ROW_MODELS[kind]
        stmt = (
            self.sql.insert(model)
            .values(
                [
                    {
                        "transcript_db_id": db_id,
                        "description": description,
                        "ordinal": ordinal,
                        "idempotency_key": child_row_idempotency_key(
                            transcript_id, kind.value, ordinal, description
                        ),
                    }
                    for ordinal, description in enumerate(descriptions)
                ]
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        )
        await tx.execute(stmt)

    # -------------------------------------------------------------- #
    # Read Path
    # -------------------------------------------------------------- #

    async def get_transcript_row(self, transcript_id: str) -> dict[str, Any] | None:
        """Fetch the raw transcript row by business id, or None."""
        query = select(TranscriptModel).where(TranscriptModel.transcript_id == transcript_id)
        rows = await self.sql.execute(query)
        return rows[0] if rows else None

    async def list_pending_transcript_ids(self) -> list[str]:
        """Business ids of transcripts whose vector record has not been written."""
        query = (
            select(TranscriptModel.transcript_id)
            .where(TranscriptModel.embedding_indexed.is_(False))
            .order_by(TranscriptModel.id)
        )
        rows = await self.sql.execute(query)
        return [row["transcript_id"] for row in rows]

    async def load_extraction(self, row: dict[str, Any]) -> dict[str, Any]:
        """Rebuild the stored extraction of a transcript row."""
        db_id = row["id"]
        topics = await self.sql.execute(
            select(TopicModel.name)
            .join(TranscriptTopicModel, TranscriptTopicModel.topic_id == TopicModel.id)
            .where(TranscriptTopicModel.transcript_db_id == db_id)
            .order_by(TopicModel.id)
        )
        action_items = await self.sql.execute(
            select(ActionItemModel.description)
            .where(ActionItemModel.transcript_db_id == db_id)
            .order_by(ActionItemModel.ordinal)
        )
        decisions = await self.sql.execute(
            select(DecisionModel.description)
            .where(DecisionModel.transcript_db_id == db_id)
            .order_by(DecisionModel.ordinal)
        )
        return {
            "topics": [r["name"] for r in topics],
            "action_items": [r["description"] for r in action_items],
            "decisions": [r["description"] for r in decisions],
            "sentiment": row["sentiment"],
            "summary": row["summary"],
            "key_insights": list(row["key_insights"] or []),
        }

    async def hydrate(self, transcript_ids: list[str]) -> dict[str, dict[str, Any]]:
        """
        Load transcripts with their participants and topics in three batched queries.

        Args:
            transcript_ids: Business ids to load

        Returns:
            Mapping transcript_id -> serialized transcript. Missing ids are absent.
        """
        if not transcript_ids:
            return {}

        rows = await self.sql.execute(
            select(TranscriptModel).where(TranscriptModel.transcript_id.in_(transcript_ids))
        )
        return {row["transcript_id"]: row for row in await self._attach_relations(rows)}

    async def get_transcript_detail(self, transcript_id: str) -> dict[str, Any]:
        """
        Full transcript record with participants, topics, action items and decisions.

        Raises:
            TranscriptNotFoundError: No such transcript
        """
        row = await self.get_transcript_row(transcript_id)
        if row is None:
            raise TranscriptNotFoundError(transcript_id)

        extraction = await self.load_extraction(row)
        (detail,) = await self._attach_relations([row])
        detail["action_items"] = extraction["action_items"]
        detail["decisions"] = extraction["decisions"]
        return detail

    async def list_transcripts(
        self,
        participant: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """
        List transcripts, newest first.

        Args:
            participant: Exact email or case-insensitive name substring
            start_date: Only meetings at or after this instant
            end_date: Only meetings at or before this instant

        Returns:
            Serialized transcripts with participants and topics
        """
        query = select(TranscriptModel)

        if participant:
            matching = (
                select(TranscriptParticipantModel.transcript_db_id)
                .join(
                    ParticipantModel,
                    ParticipantModel.id == TranscriptParticipantModel.participant_id,
                )
                .where(
                    or_(
                        ParticipantModel.email == participant,
                        func.lower(ParticipantModel.name).contains(participant.lower()),
                    )
                )
            )
            query = query.where(TranscriptModel.id.in_(matching))
        if start_date:
            query = query.where(TranscriptModel.occurred_at >= as_utc(start_date))
        if end_date:
            query = query.where(TranscriptModel.occurred_at <= as_utc(end_date))

        rows = await self.sql.execute(
            query.order_by(TranscriptModel.occurred_at.desc(), TranscriptModel.id.desc())
        )
        return await self._attach_relations(rows)

    async def _attach_relations(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not rows:
            return []

        db_ids = [row["id"] for row in rows]
        participant_rows = await self.sql.execute(
            select(
                TranscriptParticipantModel.transcript_db_id,
                TranscriptParticipantModel.role,
                ParticipantModel.name,
                ParticipantModel.email,
            )
            .join(
                ParticipantModel, ParticipantModel.id == TranscriptParticipantModel.participant_id
            )
            .where(TranscriptParticipantModel.transcript_db_id.in_(db_ids))
            .order_by(ParticipantModel.name, ParticipantModel.email)
        )
        topic_rows = await self.sql.execute(
            select(TranscriptTopicModel.transcript_db_id, TopicModel.name)
            .join(TopicModel, TopicModel.id == TranscriptTopicModel.topic_id)
            .where(TranscriptTopicModel.transcript_db_id.in_(db_ids))
            .order_by(TopicModel.name)
        )

        participants = defaultdict(list)
        for r in participant_rows:
            participants[r["transcript_db_id"]].append(
                {"name": r["name"], "email": r["email"], "role": r["role"]}
            )
        topics = defaultdict(list)
        for r in topic_rows:
            topics[r["transcript_db_id"]].append(r["name"])

        serialized = []
        for row in rows:
            item = serialize_transcript(row)
            item["participants"] = participants[row["id"]]
            item["topics"] = topics[row["id"]]
            serialized.append(item)
        return serialized

    # -------------------------------------------------------------- #
    # Analytics
    # -------------------------------------------------------------- #

    async def topic_counts(self) -> list[dict[str, Any]]:
        """Per topic: number of linked transcripts and their titles, most frequent first."""
        rows = await self.sql.execute(
            select(TopicModel.name, TranscriptModel.title)
            .select_from(TopicModel)
            .outerjoin(TranscriptTopicModel, TranscriptTopicModel.topic_id == TopicModel.id)
            .outerjoin(TranscriptModel, TranscriptModel.id == TranscriptTopicModel.transcript_db_id)
            .order_by(TranscriptModel.occurred_at)
        )

        titles = defaultdict(list)
        for r in rows:
            # A topic with no remaining transcripts comes back once with a null title
            meetings = titles[r["name"]]
            if r["title"] is not None:
                meetings.append(r["title"])

        counts = [
            {"topic": name, "count": len(meetings), "meetings": meetings}
            for name, meetings in titles.items()
        ]
        counts.sort(key=lambda item: (-item["count"], item["topic"]))
        return counts

    async def participant_counts(self) -> list[dict[str, Any]]:
        """Per participant: meeting count and meeting titles, most active first."""
        rows = await self.sql.execute(
            select(ParticipantModel.name, ParticipantModel.email, TranscriptModel.title)
            .select_from(ParticipantModel)
            .outerjoin(
                TranscriptParticipantModel,
                TranscriptParticipantModel.participant_id == ParticipantModel.id,
            )
            .outerjoin(
                TranscriptModel, TranscriptModel.id == TranscriptParticipantModel.transcript_db_id
            )
            .order_by(TranscriptModel.occurred_at)
        )

        by_email: dict[str, dict[str, Any]] = {}
        for r in rows:
            entry = by_email.setdefault(
                r["email"], {"name": r["name"], "email": r["email"], "meetings": []}
            )
            if r["title"] is not None:
                entry["meetings"].append(r["title"])

        counts = [{**entry, "meeting_count": len(entry["meetings"])} for entry in by_email.values()]
        counts.sort(key=lambda item: (-item["meeting_count"], item["email"]))
        return counts

    async def sentiment_trend(self) -> list[dict[str, Any]]:
        """Per calendar day: mean sentiment score and meeting count, oldest first."""
        day = func.date(TranscriptModel.occurred_at)
        score = case(
            *[
                (TranscriptModel.sentiment == name, value)
                for name, value in SENTIMENT_SCORES.items()
            ],
            else_=0,
        )
        rows = await self.sql.execute(
            select(
                day.label("day"),
                func.avg(score).label("avg_sentiment"),
                func.count(TranscriptModel.id).label("meeting_count"),
            )
            .group_by(day)
            .order_by(day)
        )
        return [
            {
                "date": str(r["day"]),
                "avg_sentiment": float(r["avg_sentiment"]),
                "meeting_count": r["meeting_count"],
            }
            for r in rows
        ]


# -------------------------------------------------------------- #
# Serialization
# -------------------------------------------------------------- #


def serialize_transcript(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a transcripts row into its JSON-ready form."""
    return {
        "id": row["id"],
        "transcript_id": row["transcript_id"],
        "title": row["title"],
        "occurred_at": isoformat_or_none(row["occurred_at"]),
        "duration_minutes": row["duration_minutes"],
        "transcript_text": row["transcript_text"],
        "metadata": row["meeting_metadata"] or {},
        "sentiment": row["sentiment"],
        "summary": row["summary"],
        "key_insights": list(row["key_insights"] or []),
        "embedding_indexed": bool(row["embedding_indexed"]),
        "created_at": isoformat_or_none(row["created_at"]),
    }
