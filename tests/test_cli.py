"""Tests for the sftool command line."""

from typer.testing import CliRunner

from sifli_flasher.cli import app

runner = CliRunner()


def test_list_chips() -> None:
    result = runner.invoke(app, ["list-chips"])
    assert result.exit_code == 0
    assert "SF32LB52" in result.output
    assert "ram_patch_52X_NAND.bin" in result.output


def test_inspect_shows_chunks(tmp_path) -> None:
    path = tmp_path / "fw.bin"
    path.write_bytes(bytes([0xAB]) * 10)

    result = runner.invoke(app, ["inspect", f"{path}@0x12000000"])

    assert result.exit_code == 0
    assert "0x12000000" in result.output
    assert "0xB25EED34" in result.output


def test_inspect_bad_input_exits_nonzero(tmp_path) -> None:
    path = tmp_path / "fw.bin"
    path.write_bytes(b"\x00")
    result = runner.invoke(app, ["inspect", str(path)])
    assert result.exit_code == 1


def test_write_flash_requires_chip_and_port(tmp_path) -> None:
    result = runner.invoke(app, ["write-flash", "fw.bin@0x0"])
    assert result.exit_code != 0


def test_write_flash_rejects_bad_baud() -> None:
    result = runner.invoke(
        app, ["write-flash", "fw.bin@0x0", "--chip", "SF32LB52", "--port", "COM3", "--baud", "0"]
    )
    assert result.exit_code == 2


def test_write_flash_reports_image_error(tmp_path) -> None:
    path = tmp_path / "fw.bin"
    path.write_bytes(b"\x00")
    result = runner.invoke(
        app, ["write-flash", str(path), "--chip", "SF32LB52", "--port", "COM3"]
    )
    assert result.exit_code == 1
    assert "address" in result.output
