"""JSON (RFC 8259) values."""

GRAMMAR = r'''
(grammar json
  (token STRING "\"(?:[^\"\\\\]|\\\\.)*\"")
  (token NUMBER "-?(?:0|[1-9][0-9]*)(?:\\.[0-9]+)?(?:[eE][+-]?[0-9]+)?")

  (rule value :transparent
    object array STRING NUMBER "true" "false" "null")
  (rule object ("{" (? member (* "," member)) "}"))
  (rule member (STRING ":" value))
  (rule array ("[" (? value (* "," value)) "]")))
'''
