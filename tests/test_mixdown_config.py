import pytest

from mixdown.backends import CpuReducer, GpuReducer, create_strategy
from mixdown.config import DEFAULT_SAMPLE_RATE, MixerConfig
from mixdown.errors import DeviceError, InvalidConfigError


def test_defaults() -> None:
    config = MixerConfig()
    assert config.backend == "cpu"
    assert config.sample_rate == DEFAULT_SAMPLE_RATE == 44_100
    assert config.workgroup_size == 256
    assert config.max_workgroups_per_dimension == 65_535


def test_from_env_reads_overrides() -> None:
    config = MixerConfig.from_env(
        {
            "MIXDOWN_BACKEND": " GPU ",
            "MIXDOWN_SAMPLE_RATE": "48000",
            "MIXDOWN_CPU_WORKERS": "3",
            "MIXDOWN_WORKGROUP_SIZE": "",
        }
    )
    assert config.backend == "gpu"
    assert config.sample_rate == 48_000
    assert config.cpu_workers == 3
    assert config.workgroup_size == 256


def test_keyword_overrides_win_over_env() -> None:
    config = MixerConfig.from_env({"MIXDOWN_BACKEND": "gpu"}, backend="cpu")
    assert config.backend == "cpu"


def test_invalid_env_value() -> None:
    with pytest.raises(InvalidConfigError):
        MixerConfig.from_env({"MIXDOWN_BACKEND": "tpu"})


def test_build_rejects_unknown_fields() -> None:
    with pytest.raises(InvalidConfigError):
        MixerConfig.build(channels=6)


def test_build_rejects_non_positive_values() -> None:
    with pytest.raises(InvalidConfigError):
        MixerConfig.build(sample_rate=0)


def test_create_strategy_cpu() -> None:
    strategy = create_strategy(MixerConfig(cpu_workers=2, cpu_chunk_size=10))
    assert isinstance(strategy, CpuReducer)
    assert strategy.workers == 2
    assert strategy.chunk_size == 10


def test_create_strategy_gpu_uses_given_runtime(emulated_runtime) -> None:
    strategy = create_strategy(
        MixerConfig(backend="gpu", workgroup_size=64), runtime=emulated_runtime
    )
    assert isinstance(strategy, GpuReducer)
    assert "@workgroup_size(64)" in emulated_runtime.shader_sources[0]


def test_create_strategy_gpu_propagates_device_error(make_runtime) -> None:
    runtime = make_runtime(fail_pipeline=True)
    with pytest.raises(DeviceError):
        create_strategy(MixerConfig(backend="gpu"), runtime=runtime)
    assert not runtime.closed
