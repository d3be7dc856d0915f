import pytest

from microboot.bootloader import (
    BOOT_MAGIC,
    BootAction,
    BootConfig,
    Bootloader,
    UserData,
)
from microboot.flash import MemoryFlash


@pytest.fixture
def flash():
    return MemoryFlash()


def sample_user_data():
    return UserData(
        project_name="demo",
        hardware_version="hw-1",
        soft_boot_version="boot-1",
        soft_app_version="app-1",
        receive=b"hello",
    )


def write_vectors(flash, config, stack_pointer, entry):
    flash.write(config.app_part_addr, stack_pointer.to_bytes(4, "little"))
    flash.write(config.reset_vector_address, entry.to_bytes(4, "little"))


def test_config_defaults_from_source():
    cfg = BootConfig()
    assert cfg.app_part_addr == 0x8020000
    assert cfg.app_part_size == 0x60000
    assert cfg.boot_flash_ops_addr == 0x08001000


def test_config_layout_is_contiguous():
    cfg = BootConfig()
    assert cfg.backup_address + cfg.user_data_size == cfg.user_data_address
    assert cfg.user_data_address + cfg.user_data_size == cfg.magic1_address
    assert cfg.magic1_address + cfg.mark_size == cfg.magic2_address
    assert cfg.magic2_address + cfg.mark_size == cfg.magic3_address
    assert cfg.magic3_address + cfg.mark_size == cfg.app_end


def test_config_rejects_small_marks():
    with pytest.raises(ValueError):
        BootConfig(mark_size=2)


def test_user_data_round_trip():
    ud = sample_user_data()
    raw = ud.to_bytes()
    assert len(raw) == 192
    assert UserData.from_bytes(raw) == ud


def test_user_data_layout():
    raw = sample_user_data().to_bytes()
    assert raw[:16] == b"demo".ljust(16, b"\x00")
    assert raw[64:69] == b"hello"


def test_user_data_name_too_long():
    with pytest.raises(ValueError):
        UserData(project_name="x" * 17)


def test_user_data_from_short_bytes():
    with pytest.raises(ValueError):
        UserData.from_bytes(b"\x00" * 10)


def test_fresh_flash_has_no_application(flash):
    boot = Bootloader(flash)
    assert boot.enter_application() is BootAction.NO_APPLICATION
    assert flash.active is False


def test_zero_reset_vector_means_no_application(flash):
    cfg = BootConfig()
    write_vectors(flash, cfg, 0x20001000, 0)
    assert Bootloader(flash).enter_application() is BootAction.NO_APPLICATION


def test_valid_application_is_started(flash):
    cfg = BootConfig()
    write_vectors(flash, cfg, 0x20001000, 0x08020101)
    started = []
    boot = Bootloader(flash, start_application=lambda sp, pc: started.append((sp, pc)))
    assert boot.enter_application() is BootAction.START_APPLICATION
    assert started == [(0x20001000, 0x08020101)]


def test_enter_bootloader_sets_magic3_and_user_data(flash):
    cfg = BootConfig()
    write_vectors(flash, cfg, 0x20001000, 0x08020101)
    ud = sample_user_data()
    Bootloader(flash).enter_bootloader(ud)
    magic = flash.read(cfg.magic3_address, 4)
    assert int.from_bytes(magic, "little") == BOOT_MAGIC

    started = []
    boot = Bootloader(flash, start_application=lambda sp, pc: started.append(pc))
    assert boot.enter_application() is BootAction.ENTER_BOOTLOADER
    assert boot.user_data == ud
    assert started == []


def test_enter_bootloader_rejects_oversized_data(flash):
    with pytest.raises(ValueError):
        Bootloader(flash).enter_bootloader(b"\x01" * 193)


def test_interrupted_download_restores_backup(flash):
    ud = sample_user_data()
    Bootloader(flash, user_data=ud).begin_download()
    cfg = BootConfig()
    assert flash.read(cfg.magic2_address, cfg.mark_size) == b"\x55" * cfg.mark_size

    boot = Bootloader(flash)
    assert boot.enter_application() is BootAction.DOWNLOAD_INCOMPLETE
    assert boot.user_data == ud


def test_finalized_download_starts_application(flash):
    cfg = BootConfig()
    write_vectors(flash, cfg, 0x20002000, 0x08020201)
    boot = Bootloader(flash, user_data=sample_user_data())
    boot.begin_download()
    boot.finalize_download()
    assert flash.read(cfg.magic1_address, cfg.mark_size) == b"\x55" * cfg.mark_size

    started = []
    fresh = Bootloader(flash, start_application=lambda sp, pc: started.append((sp, pc)))
    assert fresh.enter_application() is BootAction.START_APPLICATION
    assert started == [(0x20002000, 0x08020201)]


def test_begin_download_clears_previous_boot_request(flash):
    boot = Bootloader(flash, user_data=sample_user_data())
    boot.enter_bootloader(sample_user_data())
    boot.begin_download()
    cfg = BootConfig()
    assert flash.read(cfg.magic3_address, 4) == b"\xff" * 4
    assert Bootloader(flash).enter_application() is BootAction.DOWNLOAD_INCOMPLETE


def test_user_request_overrides_application(flash):
    cfg = BootConfig()
    write_vectors(flash, cfg, 0x20001000, 0x08020101)
    ud = sample_user_data()
    flash.write(cfg.user_data_address, ud.to_bytes())
    started = []
    boot = Bootloader(
        flash,
        user_requested=lambda: True,
        start_application=lambda sp, pc: started.append(pc),
    )
    assert boot.enter_application() is BootAction.USER_REQUEST
    assert boot.user_data == ud
    assert started == []
    assert flash.active is False