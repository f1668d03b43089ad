from x16periph.sdcard import SdCard
from x16periph.vera_spi import VeraSpi


def make_spi(tmp_path):
    path = tmp_path / "card.img"
    path.write_bytes(bytes(1 << 20))
    card = SdCard()
    card.set_path(str(path))
    return VeraSpi(card), card


def transfer(spi, value):
    spi.write(0, value)
    spi.step(8)
    return spi.read(0)


def command_frame(index, argument=0):
    return bytes([0x40 | index]) + argument.to_bytes(4, "big") + b"\x95"


def test_reset_state():
    spi = VeraSpi(SdCard())
    assert spi.read(1) == 0
    assert spi.read(0) == 0xFF
    assert spi.read(2) == 0


def test_select_sets_control_bit():
    spi = VeraSpi(SdCard())
    spi.write(1, 1)
    assert spi.read(1) == 0x01
    spi.write(1, 0)
    assert spi.read(1) == 0x00


def test_write_without_select_does_nothing():
    spi = VeraSpi(SdCard())
    spi.write(0, 0x40)
    assert spi.read(1) & 0x80 == 0


def test_busy_until_eight_clocks(tmp_path):
    spi, card = make_spi(tmp_path)
    spi.write(1, 1)
    spi.write(0, 0xFF)
    assert spi.read(1) & 0x80 == 0x80
    spi.step(7)
    assert spi.read(1) & 0x80 == 0x80
    spi.step(1)
    assert spi.read(1) & 0x80 == 0
    card.detach()


def test_command_through_spi(tmp_path):
    spi, card = make_spi(tmp_path)
    spi.write(1, 1)
    for b in command_frame(0):
        transfer(spi, b)
    assert transfer(spi, 0xFF) == 0x01
    card.detach()


def test_reselect_discards_partial_command(tmp_path):
    spi, card = make_spi(tmp_path)
    spi.write(1, 1)
    for b in command_frame(8)[:3]:
        transfer(spi, b)
    spi.write(1, 0)
    spi.write(1, 1)
    for b in command_frame(8, 0x1AA):
        transfer(spi, b)
    assert [transfer(spi, 0xFF) for _ in range(5)] == [0x01, 0x00, 0x00, 0x01, 0xAA]
    card.detach()


def test_unattached_card_reads_ff():
    spi = VeraSpi(SdCard())
    spi.write(1, 1)
    assert transfer(spi, 0x40) == 0xFF


def test_autotx_starts_transfer_on_read(tmp_path):
    spi, card = make_spi(tmp_path)
    spi.write(1, 0x09)
    assert spi.read(1) == 0x08 | 0x01
    spi.read(0)
    assert spi.read(1) == 0x80 | 0x08 | 0x01
    spi.step(8)
    assert spi.read(1) & 0x80 == 0
    card.detach()