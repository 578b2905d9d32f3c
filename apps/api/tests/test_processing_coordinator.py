"""Processing coordinator workflow tests."""

from __future__ import annotations

import tempfile
import threading
import unittest
from unittest.mock import patch

from _fakes import (
    BUCKET,
    MB,
    FakeOpenAI,
    Pipeline,
    completion,
    connection_error,
    marketing_payload,
    status_error,
    transcript,
)

from audiobook_processing.errors import ApiError
from audiobook_processing.repositories.memory import InMemoryStore
from audiobook_processing.schemas.audiobook import AudiobookStatus
from audiobook_processing.schemas.events import AUDIOBOOK_UPLOADED, PROCESSING_COMPLETE, UploadedEvent
from audiobook_processing.schemas.job import JobStatus
from audiobook_processing.services.jobs import CANCEL_MESSAGE, JobService
from audiobook_processing.services.processing import ProcessingCoordinator, remap_transcription_progress

_TEXT = "The lighthouse keeper watched the harbor every night. " * 20


class _PipelineCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _pipeline(self, fake: FakeOpenAI, **kwargs) -> Pipeline:
        return Pipeline(self._tmp.name, fake, **kwargs)

    @staticmethod
    def _upload(pipeline: Pipeline, audiobook, key: str = "uploads/book.mp3") -> None:
        pipeline.bus.publish(
            AUDIOBOOK_UPLOADED,
            UploadedEvent(
                audiobook_id=audiobook.id,
                file_name=key.rsplit("/", 1)[-1],
                file_size=audiobook.file_size_bytes or 0,
                file_path=key,
            ),
        )

    @staticmethod
    def _only_job(pipeline: Pipeline):
        jobs = list(pipeline.store.jobs.values())
        assert len(jobs) == 1, jobs
        return jobs[0]

    @staticmethod
    def _service(pipeline: Pipeline) -> JobService:
        return JobService(
            pipeline.store,
            object_store=pipeline.object_store,
            bucket=BUCKET,
            dispatch=pipeline.bus.publish,
        )


class ProcessingCoordinatorTests(_PipelineCase):
    def test_successful_run_walks_status_sequence(self) -> None:
        pipeline = self._pipeline(
            FakeOpenAI(transcripts=[transcript(_TEXT, 300.0)], completions=[completion(marketing_payload())])
        )
        audiobook = pipeline.add_audiobook()

        with patch.object(
            InMemoryStore,
            "update_job_progress",
            autospec=True,
            side_effect=InMemoryStore.update_job_progress,
        ) as spy:
            self._upload(pipeline, audiobook)

        writes = [(call.kwargs["status"], call.kwargs["progress"]) for call in spy.call_args_list]
        self.assertEqual(
            writes,
            [
                (JobStatus.DOWNLOADING, 5),
                (JobStatus.DOWNLOADING, 11),
                (JobStatus.DOWNLOADING, 17),
                (JobStatus.CHUNKING, 20),
                (JobStatus.CHUNKING, 23),
                (JobStatus.TRANSCRIBING, 35),
                (JobStatus.TRANSCRIBING, 59),
                (JobStatus.PROCESSING, 65),
                (JobStatus.PROCESSING, 70),
                (JobStatus.GENERATING_CONTENT, 75),
                (JobStatus.PROCESSING, 90),
            ],
        )

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.progress, 100)
        self.assertIsNotNone(job.completed_at)
        transcription = pipeline.store.get_transcription(job.metadata["transcriptionId"])
        self.assertEqual(transcription.word_count, len(_TEXT.split()))
        self.assertEqual(job.metadata["categoriesGenerated"], ["History", "Science & Technology"])
        self.assertEqual(job.metadata["fileName"], "book.mp3")
        self.assertIn("totalTimeMs", job.metadata)

        self.assertEqual(audiobook.status, AudiobookStatus.ACTIVE)
        self.assertEqual(audiobook.categories, ["History", "Science & Technology"])
        self.assertTrue(audiobook.ai_summary)

        (done,) = pipeline.bus.events_named(PROCESSING_COMPLETE)
        self.assertTrue(done.success)
        self.assertEqual(done.transcription_id, transcription.id)

    def test_oversized_file_fails_without_remote_call(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[transcript("never")]))
        audiobook = pipeline.add_audiobook(size_bytes=26 * MB)

        self._upload(pipeline, audiobook)

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("exceeds maximum limit", job.error_message)
        self.assertEqual(job.progress, 20)
        self.assertIsNotNone(job.completed_at)
        self.assertEqual(pipeline.fake.transcriptions.calls, [])
        self.assertEqual(pipeline.object_store.download_count, 1)
        self.assertEqual(audiobook.status, AudiobookStatus.PROCESSING)
        self.assertIsNone(pipeline.store.get_transcription_for_audiobook(audiobook.id))

        (done,) = pipeline.bus.events_named(PROCESSING_COMPLETE)
        self.assertFalse(done.success)
        self.assertEqual(done.error, job.error_message)

    def test_quota_exceeded_fails_after_one_call(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[status_error(429, "quota", code="insufficient_quota")]))
        audiobook = pipeline.add_audiobook()

        self._upload(pipeline, audiobook)

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("OpenAI quota exceeded", job.error_message)
        self.assertEqual(len(pipeline.fake.transcriptions.calls), 1)
        self.assertEqual(job.metadata["attempts"], 1)

    def test_retryable_failure_is_reattempted_on_same_job(self) -> None:
        fake = FakeOpenAI(
            transcripts=[connection_error(), connection_error(), connection_error(), transcript(_TEXT)],
            completions=[completion(marketing_payload())],
        )
        pipeline = self._pipeline(fake)
        audiobook = pipeline.add_audiobook()

        self._upload(pipeline, audiobook)

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.metadata["attempt"], 2)
        self.assertEqual(len(fake.transcriptions.calls), 4)

    def test_workflow_attempts_are_bounded(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[status_error(503)]), workflow_max_attempts=2)
        audiobook = pipeline.add_audiobook()

        self._upload(pipeline, audiobook)

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.metadata["attempts"], 2)
        self.assertEqual(len(pipeline.fake.transcriptions.calls), 6)

    def test_invalid_generation_reply_fails_after_transcription_saved(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[transcript(_TEXT)], completions=[completion("not json")]))
        audiobook = pipeline.add_audiobook()

        self._upload(pipeline, audiobook)

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertTrue(job.error_message.startswith("Content generation failed:"))
        self.assertEqual(job.progress, 75)
        self.assertIsNotNone(pipeline.store.get_transcription_for_audiobook(audiobook.id))
        self.assertIsNone(audiobook.description)

    def test_missing_audiobook_fails_job(self) -> None:
        pipeline = self._pipeline(FakeOpenAI())
        pipeline.bus.publish(
            AUDIOBOOK_UPLOADED,
            UploadedEvent(audiobook_id="missing", file_name="a.mp3", file_size=1, file_path="a.mp3"),
        )

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error_message, "Audiobook not found: missing")

    def test_cancel_during_generation_discards_results(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[transcript(_TEXT)]))
        audiobook = pipeline.add_audiobook()
        service = self._service(pipeline)

        def cancel_then_reply(**_):
            service.cancel_job(job_id=self._only_job(pipeline).id)
            return completion(marketing_payload())

        pipeline.fake.completions.outcomes = [cancel_then_reply]

        self._upload(pipeline, audiobook)

        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error_message, CANCEL_MESSAGE)
        self.assertEqual(job.progress, 75)
        self.assertEqual(audiobook.status, AudiobookStatus.DRAFT)
        self.assertIsNone(audiobook.description)
        self.assertEqual(audiobook.categories, [])

        (done,) = pipeline.bus.events_named(PROCESSING_COMPLETE)
        self.assertFalse(done.success)
        self.assertEqual(done.error, CANCEL_MESSAGE)

    def test_cancel_during_generation_in_another_thread(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[transcript(_TEXT)]))
        audiobook = pipeline.add_audiobook()
        generating = threading.Event()
        release = threading.Event()

        def reply_when_released(**_):
            generating.set()
            release.wait(5)
            return completion(marketing_payload())

        pipeline.fake.completions.outcomes = [reply_when_released]
        worker = threading.Thread(target=self._upload, args=(pipeline, audiobook))
        worker.start()
        self.assertTrue(generating.wait(5))

        cancelled = self._service(pipeline).cancel_job(job_id=self._only_job(pipeline).id)
        release.set()
        worker.join(5)

        self.assertFalse(worker.is_alive())
        self.assertEqual(cancelled.status, JobStatus.FAILED)
        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error_message, CANCEL_MESSAGE)
        self.assertNotEqual(audiobook.status, AudiobookStatus.ACTIVE)
        self.assertEqual(audiobook.status, AudiobookStatus.DRAFT)
        self.assertEqual(audiobook.categories, [])
        (done,) = pipeline.bus.events_named(PROCESSING_COMPLETE)
        self.assertFalse(done.success)

    def test_cancel_rejected_once_results_are_being_written(self) -> None:
        pipeline = self._pipeline(
            FakeOpenAI(transcripts=[transcript(_TEXT)], completions=[completion(marketing_payload())])
        )
        audiobook = pipeline.add_audiobook()
        writing = threading.Event()
        release = threading.Event()
        apply_content = InMemoryStore.apply_generated_content

        def paused_apply(store, **kwargs):
            writing.set()
            release.wait(5)
            return apply_content(store, **kwargs)

        with patch.object(InMemoryStore, "apply_generated_content", autospec=True, side_effect=paused_apply):
            worker = threading.Thread(target=self._upload, args=(pipeline, audiobook))
            worker.start()
            self.assertTrue(writing.wait(5))

            with self.assertRaises(ApiError) as context:
                self._service(pipeline).cancel_job(job_id=self._only_job(pipeline).id)
            release.set()
            worker.join(5)

        self.assertEqual(context.exception.payload.code, "CANCEL_NOT_ALLOWED_STATE")
        job = self._only_job(pipeline)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertIsNone(job.error_message)
        self.assertEqual(audiobook.status, AudiobookStatus.ACTIVE)

    def test_cancel_landing_before_failure_write_reports_cancelled(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[transcript(_TEXT)]))
        audiobook = pipeline.add_audiobook()
        service = self._service(pipeline)

        def cancel_then_reject(**_):
            service.cancel_job(job_id=self._only_job(pipeline).id)
            return status_error(400, "bad request")

        pipeline.fake.completions.outcomes = [cancel_then_reject]

        # The cancel is only seen by the failure write itself.
        with patch.object(ProcessingCoordinator, "_was_finalized_elsewhere", return_value=False):
            outcome = pipeline.coordinator.handle_uploaded(
                UploadedEvent(
                    audiobook_id=audiobook.id,
                    file_name="book.mp3",
                    file_size=audiobook.file_size_bytes or 0,
                    file_path="uploads/book.mp3",
                )
            )

        self.assertTrue(outcome.cancelled)
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, CANCEL_MESSAGE)
        self.assertEqual(audiobook.status, AudiobookStatus.DRAFT)
        self.assertEqual([event.success for event in pipeline.bus.events_named(PROCESSING_COMPLETE)], [False])

    def test_admin_retry_reuses_failed_job(self) -> None:
        fake = FakeOpenAI(
            transcripts=[status_error(400, "bad request"), transcript(_TEXT)],
            completions=[completion(marketing_payload())],
        )
        pipeline = self._pipeline(fake)
        audiobook = pipeline.add_audiobook()
        self._upload(pipeline, audiobook)
        failed = self._only_job(pipeline)
        self.assertEqual(failed.status, JobStatus.FAILED)

        response = self._service(pipeline).retry_job(job_id=failed.id)

        self.assertEqual(response.job_id, failed.id)
        job = self._only_job(pipeline)
        self.assertIs(job, failed)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.progress, 100)
        self.assertIsNone(job.error_message)
        self.assertEqual(job.metadata["retryCount"], 1)
        self.assertEqual(job.metadata["filePath"], "uploads/book.mp3")
        self.assertEqual(audiobook.status, AudiobookStatus.ACTIVE)
        self.assertEqual([event.success for event in pipeline.bus.events_named(PROCESSING_COMPLETE)], [False, True])

    def test_retrigger_for_finished_job_is_ignored(self) -> None:
        pipeline = self._pipeline(FakeOpenAI(transcripts=[transcript(_TEXT)], completions=[completion(marketing_payload())]))
        audiobook = pipeline.add_audiobook()
        self._upload(pipeline, audiobook)
        job = self._only_job(pipeline)

        outcome = pipeline.coordinator.handle_uploaded(
            UploadedEvent(
                audiobook_id=audiobook.id,
                file_name="book.mp3",
                file_size=1,
                file_path="uploads/book.mp3",
                job_id=job.id,
            )
        )

        self.assertIsNone(outcome)
        self.assertEqual(len(pipeline.fake.transcriptions.calls), 1)

    def test_progress_remap_band(self) -> None:
        self.assertEqual(remap_transcription_progress(0), 5)
        self.assertEqual(remap_transcription_progress(100), 65)


if __name__ == "__main__":
    unittest.main()
