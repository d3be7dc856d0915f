# microboot

Building blocks for a small firmware bootloader and its over-the-air
update path, written so that they can be exercised and tested on a host.

## Modules

- `microboot.ipc`: `Mutex`, a try-lock whose `enter()` returns `True` if it
  took the lock and `False` if it was already held, and `Event`, a polled flag
  whose `wait()` reports whether it is set and clears it unless the event was
  created with `manual=True`.
- `microboot.flash`: `FlashDevice` (name, start, size, page size, sector runs
  of `FlashSector`, erased value, timeouts) and `MemoryFlash`, a flash held in
  RAM. `erase` wipes every sector the range touches, `write` can only clear
  bits (it ANDs with the current contents), and any access outside the device
  raises `FlashError`. `MemoryFlash()` with no argument models a 512 kB
  on-chip device at `0x08000000` with 8 kB sectors.
- `microboot.intelhex`: `HexParser`, an incremental Intel HEX decoder that
  keeps its state between chunks. `parse(blob, buffer_size)` returns a
  `ParseResult` with a `ParseStatus` (`OK`, `EOF`, `UNALIGNED`,
  `LINE_OVERRUN`, `CKSUM_FAIL`, ...), the number of input bytes consumed, the
  target address, the decoded byte count and the data padded with `0xFF` to
  `buffer_size`. Universal Hex blocks for another board than `board_id` or
  `board_id_default` are skipped.
- `microboot.bootloader`: `BootConfig` (application address, reset vector
  offset, partition size, user data and marker sizes), `UserData` (four
  16-byte identification strings and a 128-byte message area, with
  `to_bytes` / `from_bytes`) and `Bootloader`. `enter_bootloader`,
  `begin_download` and `finalize_download` write the user data and magic
  markers at the end of the application partition; `enter_application`
  reads them back and returns a `BootAction`.
- `microboot.fsm`: `FsmResult` codes and `SimpleFsm`, which runs a mapping of
  named state handlers one `step()` at a time. A handler returns
  `fsm.transfer_to(name)` to move on at the next step,
  `fsm.update_state_to(name)` to run the new state at once, `None` to stay,
  or an `FsmResult` to end the run.
- `microboot.check_agent`: `PeekQueue`, a byte FIFO with a separate peek
  cursor, and `CheckEngine`, which offers the queued bytes to each registered
  `CheckAgent` in turn. An agent that claims the data consumes what it
  peeked; when every agent declines, one byte is dropped.
- `microboot.ymodem_ota`: `crc16`, `parse_file_header`, `to_fsm_result`,
  `YmodemState`, `FileHeader` and `OtaReceiver`, whose callbacks erase the
  application partition for an announced file, program and read-verify each
  data block, and set the bootloader's download markers.
- `microboot.ymodem_send`: `FileSender`, whose callbacks open up to five
  files in turn, produce block 0 (name, NUL, decimal size), read file data
  and report the percentage sent.

## Installation

```
pip install .
```

Install the test dependencies with `pip install .[test]`, then run `pytest`.

## Example

```python
from microboot.flash import MemoryFlash
from microboot.bootloader import BootAction, Bootloader

flash = MemoryFlash()
loader = Bootloader(flash, start_application=lambda sp, pc: print(hex(sp), hex(pc)))

loader.begin_download()
# initial stack pointer and reset vector of the new image
flash.write(0x8020000, (0x20010000).to_bytes(4, "little") + (0x08020101).to_bytes(4, "little"))
loader.finalize_download()

assert loader.enter_application() is BootAction.START_APPLICATION
```

Decoding Intel HEX:

```python
from microboot.intelhex import HexParser, ParseStatus

result = HexParser().parse(":0400000001020304F2\n:00000001FF\n", 16)
assert result.status is ParseStatus.EOF
assert result.data[:result.count] == b"\x01\x02\x03\x04"
```

## What this package does not do

- It has no YMODEM protocol engine. `OtaReceiver` and `FileSender` only
  supply the callbacks such an engine calls; their `as_agent(step)` wraps a
  step function you provide.
- It has no driver for real flash hardware: `Bootloader` works with any
  object offering `init`, `uninit`, `erase`, `write` and `read`, and
  `MemoryFlash` is the only one included.
- It does not jump into firmware. When `enter_application` decides to start
  the application it calls your `start_application(stack_pointer, entry)`.
- It has no command line, shell or serial port handling.