from __future__ import annotations

from datetime import UTC, datetime

import allure
import pytest

from xpcshell_timings.encoding import (
    TABLE_NAMES,
    DatasetEncoder,
    DatasetStats,
    StatusGroup,
    StringTable,
    decode_timestamps,
    encode_dataset,
    split_test_path,
)
from xpcshell_timings.encoding.encoder import iso_timestamp, round_half_up
from xpcshell_timings.models import JobResult, RunEvent

pytestmark = [
    allure.epic("Dataset Encoding"),
    allure.feature("Columnar Encoder"),
]

START = 1_760_000_000


def _ms(offset_seconds: float) -> float:
    return (START + offset_seconds) * 1000


def _job(task_id: str, *events: RunEvent, job_name: str = "test-linux/opt-xpcshell") -> JobResult:
    return JobResult(
        job_name=job_name,
        task_id=task_id,
        retry_id=0,
        repository="mozilla-central",
        start_time=START,
        events=list(events),
    )


def _run(path: str, status: str, *, offset: float, duration: float = 100, **extra) -> RunEvent:
    return RunEvent(
        path=path,
        status=status,
        duration_ms=duration,
        timestamp_ms=_ms(offset),
        **extra,
    )


def test_same_test_and_status_in_two_jobs_share_one_sorted_group() -> None:
    results = [
        _job("taskA", _run("dom/base/test/test_a.js", "PASS", offset=10.5, duration=100.4)),
        _job("taskB", _run("dom/base/test/test_a.js", "PASS", offset=4, duration=99.5)),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=2)

    assert dataset is not None
    tables = dataset["tables"]
    assert tables["testPaths"] == ["dom/base/test"]
    assert tables["testNames"] == ["test_a.js"]
    assert tables["statuses"] == ["PASS"]
    assert tables["taskIds"] == ["taskA.0", "taskB.0"]
    assert dataset["testInfo"] == {"testPathIds": [0], "testNameIds": [0]}
    assert dataset["taskInfo"] == {"repositoryIds": [0, 0], "jobNameIds": [0, 0]}
    assert dataset["testRuns"] == [
        [{"taskIdIds": [1, 0], "durations": [100, 100], "timestamps": [4, 6]}],
    ]


def test_skip_messages_are_interned_and_missing_ones_are_null() -> None:
    results = [
        _job(
            "taskA",
            _run("a/test_skip.js", "SKIP", offset=1, message="skip-if: os == 'win'"),
            _run("a/test_skip.js", "SKIP", offset=2),
        ),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=1)

    assert dataset is not None
    assert dataset["tables"]["messages"] == ["skip-if: os == 'win'"]
    [[group]] = dataset["testRuns"]
    assert group["messageIds"] == [0, None]
    assert "crashSignatureIds" not in group


def test_crash_group_carries_signatures_and_minidumps() -> None:
    results = [
        _job(
            "taskA",
            _run("a/test_crash.js", "CRASH", offset=3, crash_signature="mozilla::Boom", minidump="d1"),
            _run("a/test_crash.js", "CRASH", offset=1),
        ),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=1)

    assert dataset is not None
    assert dataset["tables"]["crashSignatures"] == ["mozilla::Boom"]
    [[group]] = dataset["testRuns"]
    assert group["crashSignatureIds"] == [None, 0]
    assert group["minidumps"] == [None, "d1"]
    assert group["timestamps"] == [1, 2]
    assert "messageIds" not in group


def test_missing_status_combinations_are_holes() -> None:
    results = [
        _job(
            "taskA",
            _run("a/test_one.js", "PASS", offset=1),
            _run("a/test_two.js", "FAIL", offset=2),
            _run("a/test_two.js", "PASS", offset=3),
        ),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=1)

    assert dataset is not None
    assert dataset["tables"]["statuses"] == ["PASS", "FAIL"]
    first, second = dataset["testRuns"]
    assert len(first) == 1
    assert first[0]["timestamps"] == [1]
    assert [group is not None for group in second] == [True, True]


def test_hole_before_a_later_status() -> None:
    results = [
        _job(
            "taskA",
            _run("a/test_one.js", "PASS", offset=1),
            _run("a/test_two.js", "TIMEOUT", offset=2),
        ),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=1)

    assert dataset is not None
    assert dataset["testRuns"][1][0] is None
    assert dataset["testRuns"][1][1]["timestamps"] == [2]


def test_all_references_point_into_their_tables() -> None:
    results = [
        _job(
            "taskA",
            _run("a/test_one.js", "PASS", offset=5),
            _run("b/test_two.js", "SKIP", offset=6, message="m"),
            job_name="test-linux/debug-xpcshell",
        ),
        _job(
            "taskB",
            _run("a/test_one.js", "FAIL", offset=7),
            _run("test_root.js", "PASS", offset=8),
        ),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=2)

    assert dataset is not None
    tables = dataset["tables"]
    assert set(tables) == set(TABLE_NAMES)
    for values in tables.values():
        assert len(values) == len(set(values))
    assert tables["testPaths"] == ["a", "b", ""]
    assert len(dataset["testRuns"]) == len(dataset["testInfo"]["testPathIds"])
    for row in dataset["testRuns"]:
        assert len(row) <= len(tables["statuses"])
        for group in row:
            if group is None:
                continue
            assert all(0 <= task < len(tables["taskIds"]) for task in group["taskIdIds"])
            assert len(group["durations"]) == len(group["timestamps"]) == len(group["taskIdIds"])


def test_string_ids_follow_first_appearance() -> None:
    results = [
        _job("taskA", _run("z/test_z.js", "PASS", offset=1), _run("a/test_a.js", "FAIL", offset=2)),
    ]

    dataset = encode_dataset(results, start_time=START, job_count=1)

    assert dataset is not None
    assert dataset["tables"]["testPaths"] == ["z", "a"]
    assert dataset["tables"]["statuses"] == ["PASS", "FAIL"]


def test_identical_input_encodes_identically() -> None:
    def results() -> list[JobResult]:
        return [
            _job("taskA", _run("a/test_a.js", "PASS", offset=3), _run("a/test_b.js", "PASS", offset=1)),
            _job("taskB", _run("a/test_a.js", "PASS", offset=2)),
        ]

    generated_at = datetime(2025, 10, 9, tzinfo=UTC)
    first = encode_dataset(results(), start_time=START, job_count=2, generated_at=generated_at)
    second = encode_dataset(results(), start_time=START, job_count=2, generated_at=generated_at)

    assert first == second


def test_no_runs_encodes_nothing() -> None:
    assert encode_dataset([], start_time=START, job_count=0) is None
    assert encode_dataset([_job("taskA")], start_time=START, job_count=1) is None


def test_metadata_is_merged_with_counts() -> None:
    dataset = encode_dataset(
        [_job("taskA", _run("a/test_a.js", "PASS", offset=1))],
        start_time=START,
        job_count=3,
        metadata={"date": "2025-10-09"},
        generated_at=datetime(2025, 10, 9, 12, 30, tzinfo=UTC),
    )

    assert dataset is not None
    assert dataset["metadata"] == {
        "date": "2025-10-09",
        "startTime": START,
        "generatedAt": "2025-10-09T12:30:00.000Z",
        "jobCount": 3,
        "processedJobCount": 1,
    }


def test_dataset_stats() -> None:
    dataset = encode_dataset(
        [
            _job("taskA", _run("a/test_a.js", "PASS", offset=1), _run("a/test_b.js", "SKIP", offset=2)),
            _job("taskB", _run("a/test_a.js", "PASS", offset=3)),
        ],
        start_time=START,
        job_count=2,
    )

    assert dataset is not None
    stats = DatasetStats.from_dataset(dataset)
    assert (stats.tests, stats.runs, stats.tasks, stats.job_names, stats.statuses) == (2, 3, 2, 1, 2)


def test_encoder_is_single_use() -> None:
    encoder = DatasetEncoder()
    encoder.add_job(_job("taskA", _run("a/test_a.js", "PASS", offset=1)))
    encoder.build(start_time=START)

    with pytest.raises(RuntimeError):
        encoder.build(start_time=START)
    with pytest.raises(RuntimeError):
        encoder.add_job(_job("taskB", _run("a/test_a.js", "PASS", offset=2)))


def test_same_task_seen_twice_is_listed_once() -> None:
    encoder = DatasetEncoder()
    encoder.add_job(_job("taskA", _run("a/test_a.js", "PASS", offset=1)))
    encoder.add_job(_job("taskA", _run("a/test_b.js", "PASS", offset=2)))

    body = encoder.build(start_time=START)

    assert body["tables"]["taskIds"] == ["taskA.0"]
    assert body["taskInfo"]["repositoryIds"] == [0]


allure_helpers = allure.feature("Encoding Helpers")


@allure_helpers
@pytest.mark.parametrize(
    ("value", "expected"),
    [(0.4, 0), (0.5, 1), (1.5, 2), (2.5, 3), (99.49, 99), (-0.5, 0)],
)
def test_round_half_up(value: float, expected: int) -> None:
    assert round_half_up(value) == expected


@allure_helpers
@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("dom/base/test/test_a.js", ("dom/base/test", "test_a.js")),
        ("test_root.js", ("", "test_root.js")),
        ("a/b/", ("a/b", "")),
    ],
)
def test_split_test_path(path: str, expected: tuple[str, str]) -> None:
    assert split_test_path(path) == expected


@allure_helpers
def test_compress_sorts_stably_and_keeps_columns_aligned() -> None:
    group = StatusGroup.for_status("SKIP")
    group.append(task_id_id=0, duration=10, timestamp=_ms(30), message_id=None)
    group.append(task_id_id=1, duration=20, timestamp=_ms(10.9), message_id=5)
    group.append(task_id_id=2, duration=30, timestamp=_ms(10.1), message_id=6)

    group.compress(start_time=START)

    assert group.timestamps == [10, 0, 20]
    assert group.task_id_ids == [1, 2, 0]
    assert group.durations == [20, 30, 10]
    assert group.message_ids == [5, 6, None]
    assert decode_timestamps(group.timestamps) == [10, 10, 30]


@allure_helpers
def test_string_table_interning() -> None:
    table = StringTable()

    assert table.intern("b") == 0
    assert table.intern("a") == 1
    assert table.intern("b") == 0
    assert table.id_of("a") == 1
    assert table.id_of("c") is None
    assert "a" in table
    assert len(table) == 2


@allure_helpers
def test_iso_timestamp_normalizes_to_utc() -> None:
    assert iso_timestamp(datetime(2025, 1, 2, 3, 4, 5, 678900, tzinfo=UTC)) == (
        "2025-01-02T03:04:05.678Z"
    )
