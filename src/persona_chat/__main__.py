from persona_chat.main import main

main()
