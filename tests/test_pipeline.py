"""Tests del pipeline: timestamps, registry, processor, buffer de líneas,
stream decoder y dispatcher push.

Ejecutar:
    pytest tests/test_pipeline.py -v
"""

import threading
import time
from datetime import timedelta
from typing import List

import pytest

from seismic_ingest.core.domain import Channel, Sample
from seismic_ingest.core.errors import LineTooLongError, OrphanChannelMarkerError
from seismic_ingest.core.pipeline import (
    FrameProcessor,
    LineBuffer,
    ProcessOutcome,
    PushDispatcher,
    ReadLoopError,
    StreamDecoder,
)
from seismic_ingest.core.timing import DEFAULT_STEP, TimestampSynthesizer
from seismic_ingest.transports.base import ReadResult, StreamReader, TransportState
from seismic_ingest.transports.serial import SerialTransport

from .conftest import ARRIVAL, Collector, FakeSerialPort


class ScriptedReader(StreamReader):
    """StreamReader que devuelve resultados predefinidos.

    Al agotarse el guion se comporta como un puerto sin datos (timeouts)
    hasta que lo cancelan.
    """

    def __init__(self, script: List[ReadResult]):
        self.script = list(script)
        self.cancelled = threading.Event()
        self.release_calls = 0
        self.released = 0

    def read(self) -> ReadResult:
        if self.cancelled.is_set():
            return ReadResult(done=True)
        if self.script:
            return self.script.pop(0)
        time.sleep(0.01)
        return ReadResult()

    def cancel(self) -> None:
        self.cancelled.set()

    def release(self) -> bool:
        self.release_calls += 1
        if self.released:
            return False
        self.released += 1
        return True


# =============================================================================
# TIMESTAMP SYNTHESIZER
# =============================================================================

class TestTimestampSynthesizer:

    def test_last_sample_gets_arrival(self):
        stamped = TimestampSynthesizer().stamp([1.0, 2.0, 3.0], ARRIVAL)
        assert stamped[-1] == (3.0, ARRIVAL)

    def test_spacing_is_fixed_step(self):
        stamped = TimestampSynthesizer().stamp([1.0, 2.0, 3.0], ARRIVAL)
        assert [ts for _, ts in stamped] == [
            ARRIVAL - 2 * DEFAULT_STEP,
            ARRIVAL - DEFAULT_STEP,
            ARRIVAL,
        ]
        assert DEFAULT_STEP == timedelta(milliseconds=10)

    def test_custom_step(self):
        synth = TimestampSynthesizer(timedelta(milliseconds=4))
        stamped = synth.stamp([0.0, 0.0], ARRIVAL)
        assert stamped[0][1] == ARRIVAL - timedelta(milliseconds=4)

    def test_empty(self):
        assert TimestampSynthesizer().stamp([], ARRIVAL) == []

    def test_negative_step_rejected(self):
        with pytest.raises(ValueError):
            TimestampSynthesizer(timedelta(milliseconds=-1))


# =============================================================================
# SUBSCRIPTION REGISTRY
# =============================================================================

class TestSubscriptionRegistry:

    def test_delivers_in_registration_order(self, registry):
        seen = []
        registry.subscribe(lambda b: seen.append("a"))
        registry.subscribe(lambda b: seen.append("b"))
        assert registry.deliver([]) == 2
        assert seen == ["a", "b"]

    def test_failing_subscriber_is_isolated(self, registry):
        first, last = Collector(), Collector()
        registry.subscribe(first)

        def boom(batch):
            raise RuntimeError("boom")

        registry.subscribe(boom, name="boom")
        registry.subscribe(last)

        ok = registry.deliver("batch")
        assert ok == 2
        assert first.batches == ["batch"]
        assert last.batches == ["batch"]
        assert registry.stats["subscriber_failures"] == 1

    def test_unsubscribe(self, registry):
        c = Collector()
        sub = registry.subscribe(c)
        assert registry.unsubscribe(sub) is True
        assert registry.unsubscribe(sub) is False
        registry.deliver("x")
        assert c.batches == []
        assert len(registry) == 0

    def test_unsubscribe_all(self, registry):
        registry.subscribe(Collector())
        registry.subscribe(Collector())
        assert registry.unsubscribe_all() == 2
        assert len(registry) == 0

    def test_subscribe_during_delivery_applies_to_next_batch(self, registry):
        late = Collector()

        def subscriber(batch):
            if batch == 1:
                registry.subscribe(late, name="late")

        registry.subscribe(subscriber)
        registry.deliver(1)
        assert late.batches == []
        registry.deliver(2)
        assert late.batches == [2]

    def test_unsubscribe_during_delivery_applies_to_next_batch(self, registry):
        second = Collector()
        handle = {}

        def first(batch):
            registry.unsubscribe(handle["second"])

        registry.subscribe(first)
        handle["second"] = registry.subscribe(second)
        registry.deliver(1)
        registry.deliver(2)
        assert second.batches == [1]

    def test_non_callable_rejected(self, registry):
        with pytest.raises(TypeError):
            registry.subscribe("not callable")

    def test_subscription_name(self, registry):
        sub = registry.subscribe(Collector(), name="chart")
        assert sub.name == "chart"
        assert registry.subscriptions == [sub]


# =============================================================================
# FRAME PROCESSOR
# =============================================================================

class TestFrameProcessor:

    def test_bare_value_delivers_single_sample(self, processor, collector):
        result = processor.process("3.14", ARRIVAL)
        assert result.outcome is ProcessOutcome.DELIVERED
        sample = collector.batches[0]
        assert isinstance(sample, Sample)
        assert sample.amplitude == 3.14
        assert sample.timestamp == ARRIVAL
        assert sample.channel is Channel.UNLABELED
        assert sample.metadata["batchSize"] == 1
        assert sample.metadata["dataType"] == "single"

    def test_unlabeled_batch_metadata(self, processor, collector):
        processor.process("1.0,2.0,3.0", ARRIVAL)
        batch = collector.batches[0]
        assert isinstance(batch, list)
        assert [s.amplitude for s in batch] == [1.0, 2.0, 3.0]
        assert [s.batch_index for s in batch] == [0, 1, 2]
        assert all(s.batch_size == 3 for s in batch)
        assert all(s.metadata["source"] == "test" for s in batch)
        assert all(s.metadata["raw"] is True for s in batch)
        assert batch[-1].timestamp == ARRIVAL

    def test_timestamps_non_decreasing_per_channel(self, processor, collector):
        processor.process("X1,2,3,Y4,5", ARRIVAL)
        batch = collector.batches[0]
        for channel in (Channel.X, Channel.Y):
            stamps = [s.timestamp for s in batch if s.channel is channel]
            assert stamps == sorted(stamps)
            assert stamps[-1] == ARRIVAL

    def test_triple_waveform_order_and_metadata(self, processor, collector):
        processor.process("T25H60V90,X1.0,2.0,Y0.5,Y0.6,Z2.1,2.2", ARRIVAL)
        batch = collector.batches[0]
        assert [s.channel for s in batch] == [Channel.X] * 2 + [Channel.Y] * 2 + [Channel.Z] * 2
        for s in batch:
            assert s.metadata["temperature"] == 25
            assert s.metadata["humidity"] == 60
            assert s.metadata["voltage"] == 90
            assert s.metadata["dataType"] == "triple-waveform"
            assert s.metadata["waveformType"] == s.channel.value
            assert s.batch_size == 2

    def test_partial_prefix_omits_missing_fields(self, processor, collector):
        processor.process("T25,X1,2", ARRIVAL)
        sample = collector.batches[0][0]
        assert sample.metadata["temperature"] == 25
        assert "humidity" not in sample.metadata
        assert "voltage" not in sample.metadata

    def test_batch_size_counts_valid_values_only(self, processor, collector):
        processor.process("1,bad,2", ARRIVAL)
        batch = collector.batches[0]
        assert [s.batch_index for s in batch] == [0, 1]
        assert all(s.batch_size == 2 for s in batch)

    def test_envelope_sample(self, processor, collector):
        processor.process(
            '{"type":"earthquake-data","payload":{"amplitude":2.5,"metadata":{"station":"S1"}}}',
            ARRIVAL,
        )
        sample = collector.batches[0]
        assert isinstance(sample, Sample)
        assert sample.amplitude == 2.5
        assert sample.timestamp == ARRIVAL
        assert sample.metadata["station"] == "S1"
        assert sample.metadata["dataType"] == "envelope"

    def test_no_data_is_not_delivered(self, processor, collector):
        result = processor.process("abc", ARRIVAL)
        assert result.outcome is ProcessOutcome.NO_DATA
        assert collector.batches == []
        assert processor.stats.no_data == 1

    def test_ignored_envelope(self, processor, collector):
        result = processor.process('{"type":"other"}', ARRIVAL)
        assert result.outcome is ProcessOutcome.IGNORED
        assert collector.batches == []

    def test_frame_error_reported_and_flow_continues(self, processor, collector, errors):
        result = processor.process("Y1,2", ARRIVAL)
        assert result.outcome is ProcessOutcome.ERROR
        assert isinstance(errors[0][0], OrphanChannelMarkerError)
        assert errors[0][1] == "Y1,2"

        processor.process("1,2", ARRIVAL)
        assert len(collector.batches) == 1
        assert processor.stats.failed == 1
        assert processor.stats.delivered == 1

    def test_error_callback_failure_does_not_propagate(self, registry):
        def bad_callback(error, raw):
            raise RuntimeError("callback broke")

        processor = FrameProcessor(registry, on_error=bad_callback)
        result = processor.process('{"type": ', ARRIVAL)
        assert result.outcome is ProcessOutcome.ERROR

    def test_stats_counts(self, processor):
        processor.process("1,2,3", ARRIVAL)
        processor.process("", ARRIVAL)
        stats = processor.stats.to_dict()
        assert stats["received"] == 2
        assert stats["delivered"] == 1
        assert stats["samples"] == 3
        assert stats["no_data"] == 1


# =============================================================================
# LINE BUFFER
# =============================================================================

class TestLineBuffer:

    def test_splits_all_line_endings(self):
        buf = LineBuffer()
        assert buf.feed("a\nb\r\nc\rd").lines == ["a", "b", "c"]
        assert buf.flush() == "d"

    def test_line_split_across_chunks(self):
        buf = LineBuffer()
        assert buf.feed("X1,2,").lines == []
        assert buf.feed("Y3\n").lines == ["X1,2,Y3"]

    def test_crlf_split_across_chunks_yields_no_extra_line(self):
        buf = LineBuffer()
        assert buf.feed("1,2\r").lines == ["1,2"]
        assert buf.feed("\n3,4\n").lines == ["3,4"]

    def test_overflow_drops_partial(self):
        buf = LineBuffer(max_line_length=10)
        result = buf.feed("x" * 20)
        assert result.overflow == "x" * 20
        assert buf.pending == 0
        assert buf.feed("1,2\n").lines == ["1,2"]

    def test_flush_empty(self):
        assert LineBuffer().flush() is None


# =============================================================================
# STREAM DECODER
# =============================================================================

class TestStreamDecoder:

    def test_processes_lines_in_order_and_flushes_tail(self, processor, collector):
        reader = ScriptedReader([
            ReadResult(text="1,2\nX3,"),
            ReadResult(text="4\n5"),
            ReadResult(done=True),
        ])
        decoder = StreamDecoder(reader, processor)
        assert decoder.start() is True
        assert decoder.join(timeout=2.0)

        assert [[s.amplitude for s in b] if isinstance(b, list) else b.amplitude
                for b in collector.batches] == [[1.0, 2.0], [3.0, 4.0], 5.0]
        assert decoder.exit_reason == "end_of_stream"
        assert reader.released == 1

    def test_cancel_is_idempotent_and_release_happens_once(self, processor):
        reader = ScriptedReader([])
        decoder = StreamDecoder(reader, processor)
        decoder.start()
        decoder.cancel()
        decoder.cancel()
        assert decoder.join(timeout=2.0)
        decoder.cancel()

        assert decoder.exit_reason == "cancelled"
        assert reader.release_calls == 1
        assert decoder.stopped

    def test_cancel_before_start_releases_reader(self, processor):
        reader = ScriptedReader([ReadResult(text="1,2\n")])
        decoder = StreamDecoder(reader, processor)
        decoder.cancel()
        decoder.cancel()

        assert reader.release_calls == 1
        assert reader.cancelled.is_set()
        assert decoder.stopped
        assert decoder.exit_reason == "cancelled"
        assert decoder.start() is False
        assert decoder.join(timeout=0.1)

    def test_cancel_before_start_unlocks_serial_port(self, processor):
        port = FakeSerialPort()
        transport = SerialTransport("fake", serial_factory=lambda name: port)
        transport.open()
        _, reader = transport.get_reader()

        StreamDecoder(reader, processor).cancel()
        assert transport.state is TransportState.OPEN
        result, _ = transport.get_reader()
        assert result.success

    def test_cancel_discards_partial_line(self, processor, collector):
        reader = ScriptedReader([ReadResult(text="1,2")])
        decoder = StreamDecoder(reader, processor)
        decoder.start()
        time.sleep(0.05)
        decoder.cancel()
        decoder.join(timeout=2.0)
        assert collector.batches == []

    def test_read_error_is_reported_and_stops(self, processor):
        reported = []
        reader = ScriptedReader([ReadResult(text="1,2\n"), ReadResult(done=True, error="device lost")])
        decoder = StreamDecoder(reader, processor, on_error=lambda e, raw: reported.append(e))
        decoder.start()
        assert decoder.join(timeout=2.0)

        assert decoder.exit_reason == "error"
        assert isinstance(reported[0], ReadLoopError)
        assert reader.released == 1

    def test_frame_errors_do_not_stop_loop(self, processor, collector, errors):
        reader = ScriptedReader([ReadResult(text="Y1,2\n1,2\n"), ReadResult(done=True)])
        decoder = StreamDecoder(reader, processor)
        decoder.start()
        decoder.join(timeout=2.0)
        assert len(errors) == 1
        assert len(collector.batches) == 1

    def test_line_too_long_reported(self, processor):
        reported = []
        reader = ScriptedReader([ReadResult(text="9" * 50), ReadResult(text="\n1,2\n"), ReadResult(done=True)])
        decoder = StreamDecoder(
            reader, processor, on_error=lambda e, raw: reported.append(e), max_line_length=16,
        )
        decoder.start()
        decoder.join(timeout=2.0)
        assert isinstance(reported[0], LineTooLongError)
        assert processor.stats.delivered == 1

    def test_start_twice(self, processor):
        decoder = StreamDecoder(ScriptedReader([ReadResult(done=True)]), processor)
        assert decoder.start() is True
        assert decoder.start() is False
        decoder.join(timeout=2.0)


# =============================================================================
# PUSH DISPATCHER
# =============================================================================

class TestPushDispatcher:

    def test_preserves_arrival_order(self, processor, collector):
        dispatcher = PushDispatcher(processor)
        dispatcher.start()
        for i in range(50):
            assert dispatcher.enqueue(str(i))
        dispatcher.stop(drain=True)

        assert [s.amplitude for s in collector.batches] == [float(i) for i in range(50)]
        assert dispatcher.metrics["processed"] == 50

    def test_full_queue_drops_and_counts(self, processor):
        dispatcher = PushDispatcher(processor, max_queue_size=2)
        # Sin worker: la cola no se vacía
        assert dispatcher.enqueue("1")
        assert dispatcher.enqueue("2")
        assert dispatcher.enqueue("3") is False
        assert dispatcher.metrics["dropped"] == 1

    def test_start_stop(self, processor):
        dispatcher = PushDispatcher(processor)
        dispatcher.start()
        assert dispatcher.is_running
        dispatcher.stop()
        assert not dispatcher.is_running
