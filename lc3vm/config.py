"""
LC-3 Virtual Machine — Machine Constants

Memory map:
  $0000–$00FF  Trap vector table
  $0100–$01FF  Interrupt vector table (unused, no interrupt support)
  $0200–$2FFF  OS and supervisor stack
  $3000–$FDFF  User program space
  $FE00–$FFFF  Device register addresses

Only KBSR and KBDR are modelled as devices. Everything else in the
device page is plain storage.
"""

# =============================================================================
#  MEMORY
# =============================================================================
MEMORY_SIZE = 1 << 16     # 65536 addressable words
WORD_MASK = 0xFFFF
PC_START = 0x3000         # OS space < $3000

# Memory-mapped device registers
MR_KBSR = 0xFE00          # Keyboard status (bit 15 = ready)
MR_KBDR = 0xFE02          # Keyboard data (low 8 bits)
KBSR_READY = 0x8000


# =============================================================================
#  TRAP VECTORS
# =============================================================================
TRAP_GETC  = 0x20         # read char, no echo
TRAP_OUT   = 0x21         # write char in R0
TRAP_PUTS  = 0x22         # write word string at R0
TRAP_IN    = 0x23         # prompt, read char, echo
TRAP_PUTSP = 0x24         # packed string (not serviced natively)
TRAP_HALT  = 0x25

IN_PROMPT = "Enter a character: "


# =============================================================================
#  RUN LOOP / LOGGING
# =============================================================================
DEFAULT_MAX_STEPS = None  # run until HALT or fault
TRACE_BUFFER_LINES = 10000  # most recent trace lines kept by get_trace()

LOG_NAME = "lc3vm"
