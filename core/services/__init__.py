# Bank statement parsing and bank rule services
