from __future__ import annotations

import pytest

from kiosk_builder.build_config import BuildConfig, load_build_config


def test_missing_optional_config_uses_defaults(tmp_path):
    cfg = load_build_config(str(tmp_path / "build_config.yaml"))

    assert cfg.build_root == "work/root"
    assert cfg.base_image_cache == "raspios.img.xz"
    assert cfg.working_image == "raspikiosk.img"
    assert cfg.disk_identifier == "0x23421312"
    assert cfg.output_prefix == "anotterkiosk"
    assert cfg.provision_script == "build.sh"
    assert cfg.grow_by == "3G"
    assert cfg.compress_threads == 0
    assert cfg.detach_all_loops is True


def test_missing_required_config_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_build_config(str(tmp_path / "nope.yaml"), required=True)


def test_yaml_overrides(tmp_path):
    p = tmp_path / "build_config.yaml"
    p.write_text(
        "paths:\n"
        "  work_dir: /srv/kiosk\n"
        "image:\n"
        "  output_prefix: lobbykiosk\n"
        "  disk_identifier: '0xdeadbeef'\n"
        "compress:\n"
        "  threads: 4\n"
        "host:\n"
        "  detach_all_loops: false\n",
        encoding="utf-8",
    )

    cfg = load_build_config(str(p))

    assert cfg.build_root == "/srv/kiosk/root"
    assert cfg.output_prefix == "lobbykiosk"
    assert cfg.disk_identifier == "0xdeadbeef"
    assert cfg.compress_threads == 4
    assert cfg.detach_all_loops is False


def test_unquoted_hex_identifier_is_normalised(tmp_path):
    p = tmp_path / "build_config.yaml"
    p.write_text("image:\n  disk_identifier: 0x23421312\n", encoding="utf-8")

    assert load_build_config(str(p)).disk_identifier == "0x23421312"


@pytest.mark.parametrize(
    "body",
    [
        "- just\n- a list\n",
        "image:\n  disk_identifier: 'PARTUUID'\n",
        "compress:\n  threads: -1\n",
        "paths: [a, b]\n",
    ],
)
def test_invalid_config_is_rejected(tmp_path, body):
    p = tmp_path / "build_config.yaml"
    p.write_text(body, encoding="utf-8")

    with pytest.raises(ValueError):
        load_build_config(str(p))


def test_non_yaml_config_is_rejected(tmp_path):
    p = tmp_path / "build_config.json"
    p.write_text("{}", encoding="utf-8")

    with pytest.raises(ValueError):
        load_build_config(str(p))


def test_empty_config_object():
    assert BuildConfig().output_dir == "."
